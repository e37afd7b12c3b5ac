"""Property keys and readers for deployment requests.

Application properties describe the app (where its source lives); deployment
properties tune how it is built and deployed on the cluster. Both are plain
string maps; this module is the only place that interprets them.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shiftdeck.config.defaults import MAX_APP_ID_LENGTH
from shiftdeck.lib.errors import InvalidRequestError

if TYPE_CHECKING:
    from shiftdeck.models.request import DeploymentRequest
    from shiftdeck.models.settings import DeployerSettings

PREFIX = "shiftdeck."
LEGACY_PREFIX = "shiftdeck.kubernetes."

# Application property keys
BUILD_GIT_URI = "shiftdeck.build.git.uri"
BUILD_GIT_REF = "shiftdeck.build.git.ref"
BUILD_GIT_DOCKERFILE = "shiftdeck.build.git.dockerfile"
BUILD_GIT_SECRET = "shiftdeck.build.git.secret"

# Deployment property keys
BUILD_FORCE = "shiftdeck.build.force"
BUILD_DOCKERFILE = "shiftdeck.build.dockerfile"
BUILD_S2I_IMAGE = "shiftdeck.build.s2i-image"
DEPLOYMENT_IMAGE_TAG = "shiftdeck.deployment.image-tag"
DEPLOYMENT_IMAGE_NAMESPACE = "shiftdeck.deployment.image-namespace"
DEPLOYMENT_LABELS = "shiftdeck.deployment.labels"
DEPLOYMENT_SERVICE_NAME = "shiftdeck.deployment.service-name"
DEPLOYMENT_SERVICE_ACCOUNT = "shiftdeck.deployment.service-account"
DEPLOYMENT_ROUTE_HOSTNAME = "shiftdeck.deployment.route.hostname"
CREATE_ROUTE = "shiftdeck.create-route"
CREATE_NODE_PORT = "shiftdeck.create-node-port"
COUNT = "shiftdeck.count"
INDEXED = "shiftdeck.indexed"
GROUP = "shiftdeck.group"
APP_ID = "shiftdeck.app-id"
S2I_BUILD = "shiftdeck.s2i-build"
PORT = "shiftdeck.port"

# Identity labels
APP_ID_LABEL = "shiftdeck-app-id"
DEPLOYMENT_ID_LABEL = "shiftdeck-deployment-id"
GROUP_ID_LABEL = "shiftdeck-group-id"

# Environment variables injected into indexed instances
INSTANCE_INDEX_ENV_VAR = "INSTANCE_INDEX"
APPLICATION_INDEX_ENV_VAR = "APPLICATION_INDEX"

_TRUE_VALUES = ("true", "1", "yes", "on")


def normalize_properties(properties: dict[str, str]) -> dict[str, str]:
    """Mirror legacy ``shiftdeck.kubernetes.*`` keys onto ``shiftdeck.*``.

    Explicitly set ``shiftdeck.*`` keys always win over mirrored ones.
    """
    result = dict(properties)
    for key, value in properties.items():
        if key.startswith(LEGACY_PREFIX):
            result.setdefault(PREFIX + key[len(LEGACY_PREFIX) :], value)
    return result


def get_bool(properties: dict[str, str], key: str, default: bool = False) -> bool:
    value = properties.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def get_int(properties: dict[str, str], key: str, default: int) -> int:
    """Read an integer property.

    Raises:
        InvalidRequestError: If the value is not an integer
    """
    value = properties.get(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as e:
        raise InvalidRequestError(key, f"'{value}' is not an integer") from e


def parse_labels(value: str | None) -> dict[str, str]:
    """Parse a ``k=v,k2=v2`` label list.

    Raises:
        InvalidRequestError: If an entry is not a ``key=value`` pair
    """
    labels: dict[str, str] = {}
    if not value or not value.strip():
        return labels
    for entry in value.split(","):
        key, sep, label_value = entry.strip().partition("=")
        if not sep or not key.strip():
            raise InvalidRequestError(
                DEPLOYMENT_LABELS,
                f"Invalid label '{entry.strip()}', expected key=value",
            )
        labels[key.strip()] = label_value.strip()
    return labels


def deployment_properties(request: DeploymentRequest) -> dict[str, str]:
    """Deployment properties with legacy keys mirrored."""
    return normalize_properties(request.deployment_properties)


def application_properties(request: DeploymentRequest) -> dict[str, str]:
    """Application properties with legacy keys mirrored."""
    return normalize_properties(request.properties)


def is_indexed(request: DeploymentRequest) -> bool:
    return get_bool(deployment_properties(request), INDEXED)


def instance_count(request: DeploymentRequest) -> int:
    """Number of instances requested; at least one.

    Read fresh from the request on every call.
    """
    return max(get_int(deployment_properties(request), COUNT, 1), 1)


def indexed_ids(app_id: str, count: int) -> list[str]:
    """Derive ``{app_id}-{index}`` for each index in ``[0, count)``."""
    return [f"{app_id}-{index}" for index in range(count)]


@dataclass(frozen=True)
class WorkloadInstance:
    """One workload object backing an application.

    Attributes:
        id: Object name; ``{app_id}-{index}`` for indexed instances
        index: Instance index, or None when not indexed
    """

    id: str
    index: int | None = None

    @property
    def env(self) -> dict[str, str]:
        """Index environment variables pinned to this instance."""
        if self.index is None:
            return {}
        return {
            INSTANCE_INDEX_ENV_VAR: str(self.index),
            APPLICATION_INDEX_ENV_VAR: str(self.index),
        }


def workload_instances(app_id: str, request: DeploymentRequest) -> list[WorkloadInstance]:
    """Workload objects backing an application.

    Indexed requests expand to one independently named instance per index;
    otherwise there is a single workload named after the application.
    """
    if is_indexed(request):
        return [
            WorkloadInstance(id=instance_id, index=index)
            for index, instance_id in enumerate(
                indexed_ids(app_id, instance_count(request))
            )
        ]
    return [WorkloadInstance(id=app_id)]


def workload_ids(app_id: str, request: DeploymentRequest) -> list[str]:
    """Ids of the workload objects backing an application."""
    return [instance.id for instance in workload_instances(app_id, request)]


def is_binary_build(request: DeploymentRequest) -> bool:
    """Whether the request carries the internal binary-input build marker."""
    return get_bool(deployment_properties(request), S2I_BUILD)


def _sanitize_id(value: str) -> str:
    return value.replace(".", "-").lower()


def create_app_id(request: DeploymentRequest) -> str:
    """Create the application id: ``<group>-<name>`` or ``<name>``.

    Raises:
        InvalidRequestError: If the id exceeds the platform name limit
    """
    group = deployment_properties(request).get(GROUP)
    app_id = f"{group}-{request.name}" if group else request.name
    app_id = _sanitize_id(app_id)
    validate_app_id(app_id)
    return app_id


def create_task_id(request: DeploymentRequest) -> str:
    """Create a task id: the app id plus a random suffix.

    An explicit ``shiftdeck.app-id`` deployment property is used verbatim.
    """
    explicit = deployment_properties(request).get(APP_ID)
    if explicit and explicit.strip():
        task_id = _sanitize_id(explicit.strip())
    else:
        group = deployment_properties(request).get(GROUP)
        base = f"{group}-{request.name}" if group else request.name
        task_id = f"{_sanitize_id(base)}-{secrets.token_hex(4)}"
    validate_app_id(task_id)
    return task_id


def validate_app_id(app_id: str) -> None:
    """Raise InvalidRequestError if ``app_id`` is not a valid object name."""
    if len(app_id) > MAX_APP_ID_LENGTH:
        raise InvalidRequestError(
            "name",
            f"Application id '{app_id}' is {len(app_id)} characters long; "
            f"the limit is {MAX_APP_ID_LENGTH}",
        )


def identity_labels(app_id: str, request: DeploymentRequest) -> dict[str, str]:
    """Labels attached to every object created for an application.

    Raises:
        InvalidRequestError: If the user label list is malformed
    """
    props = deployment_properties(request)
    labels = parse_labels(props.get(DEPLOYMENT_LABELS))
    labels[APP_ID_LABEL] = app_id
    labels[DEPLOYMENT_ID_LABEL] = app_id
    group = props.get(GROUP)
    if group:
        labels[GROUP_ID_LABEL] = group
    return labels


def app_selector(app_id: str) -> str:
    """Label selector matching every object of an application."""
    return f"{APP_ID_LABEL}={app_id}"


def image_tag(request: DeploymentRequest, settings: DeployerSettings) -> str:
    return deployment_properties(request).get(
        DEPLOYMENT_IMAGE_TAG, settings.default_image_tag
    )


def image_namespace(request: DeploymentRequest, settings: DeployerSettings) -> str:
    return deployment_properties(request).get(
        DEPLOYMENT_IMAGE_NAMESPACE, settings.namespace
    )


def container_port(request: DeploymentRequest, settings: DeployerSettings) -> int:
    return get_int(deployment_properties(request), PORT, settings.default_port)


def get_environment_variable(entries: list[str], name: str) -> str | None:
    """Look up ``name`` in a list of ``NAME=value`` entries."""
    for entry in entries:
        key, _, value = entry.partition("=")
        if key == name:
            return value
    return None


def environment_variables(entries: list[str]) -> list[dict[str, str]]:
    """Convert ``NAME=value`` entries into container env objects."""
    result = []
    for entry in entries:
        key, _, value = entry.partition("=")
        result.append({"name": key, "value": value})
    return result
