"""Cluster control-plane client.

Defines the operations the deployer needs from the cluster and an OpenShift
implementation backed by the ``kubernetes`` dynamic client. Objects are
exchanged as plain manifest dictionaries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from enum import Enum
from typing import Any

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError

from shiftdeck.config.defaults import WATCH_TIMEOUT_SECONDS
from shiftdeck.lib.errors import (
    BuildSubmissionError,
    ClusterNotAvailableError,
    DeploymentError,
)
from shiftdeck.lib.logging_config import get_logger

logger = get_logger(__name__)


class ResourceKind(Enum):
    """Cluster object kinds managed by the deployer."""

    BUILD_CONFIG = ("build.openshift.io/v1", "BuildConfig", "buildconfigs")
    BUILD = ("build.openshift.io/v1", "Build", "builds")
    IMAGE_STREAM = ("image.openshift.io/v1", "ImageStream", "imagestreams")
    DEPLOYMENT_CONFIG = (
        "apps.openshift.io/v1",
        "DeploymentConfig",
        "deploymentconfigs",
    )
    SERVICE = ("v1", "Service", "services")
    ROUTE = ("route.openshift.io/v1", "Route", "routes")
    POD = ("v1", "Pod", "pods")

    def __init__(self, api_version: str, kind: str, plural: str) -> None:
        self.api_version = api_version
        self.kind = kind
        self.plural = plural

    @property
    def path_prefix(self) -> str:
        if self.api_version == "v1":
            return "/api/v1"
        return f"/apis/{self.api_version}"


# Kinds whose failures are reported as build submission errors
_BUILD_KINDS = (ResourceKind.BUILD_CONFIG, ResourceKind.BUILD)


def is_retryable_status(status: int | None) -> bool:
    """Conflicts and server-side failures may succeed when resubmitted."""
    return status is not None and (status == 409 or status >= 500)


def api_error(
    operation: str, kind: ResourceKind | None, exc: Exception
) -> DeploymentError:
    """Convert a cluster API exception into a ShiftDeck error."""
    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", None) or str(exc)
    message = f"Cluster rejected {operation}"
    if kind is not None:
        message += f" of {kind.kind}"
    message += f" (status {status}): {reason}"
    if kind is None or kind in _BUILD_KINDS:
        return BuildSubmissionError(
            message,
            operation=operation,
            retryable=is_retryable_status(status),
            status=status,
        )
    return DeploymentError(operation=operation, message=message)


class ClusterWatch(ABC):
    """An open server-side watch yielding ``(event_type, manifest)`` pairs."""

    @abstractmethod
    def events(self) -> Iterator[tuple[str, dict[str, Any]]]:
        """Iterate over events until the stream ends or ``stop`` is called."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the stream; the events iterator ends after this."""


class ClusterClient(ABC):
    """Operations on one cluster namespace."""

    namespace: str

    @abstractmethod
    def get(self, kind: ResourceKind, name: str) -> dict[str, Any] | None:
        """Return an object, or None if it does not exist."""

    @abstractmethod
    def list(self, kind: ResourceKind, label_selector: str) -> list[dict[str, Any]]:
        """List objects matching a label selector."""

    @abstractmethod
    def create(self, kind: ResourceKind, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create an object."""

    @abstractmethod
    def create_or_replace(
        self, kind: ResourceKind, manifest: dict[str, Any]
    ) -> dict[str, Any]:
        """Create an object, or replace it in place if it already exists."""

    @abstractmethod
    def delete(self, kind: ResourceKind, name: str) -> bool:
        """Delete an object; returns False if it did not exist."""

    @abstractmethod
    def scale(self, kind: ResourceKind, name: str, replicas: int) -> None:
        """Set the replica count of a workload."""

    @abstractmethod
    def instantiate_build(
        self, build_config: str, build_request: dict[str, Any]
    ) -> dict[str, Any]:
        """Start a build run of a build pipeline with a BuildRequest."""

    @abstractmethod
    def instantiate_binary_build(
        self, build_config: str, filename: str, data: bytes
    ) -> dict[str, Any]:
        """Start a build run streaming ``data`` as its binary input."""

    @abstractmethod
    def deploy_latest(self, deployment_config: str) -> dict[str, Any]:
        """Trigger a rollout of the latest deployment of a workload."""

    @abstractmethod
    def watch(self, kind: ResourceKind, label_selector: str) -> ClusterWatch:
        """Open a watch on objects matching a label selector."""


class _DynamicWatch(ClusterWatch):
    """Watch made of consecutive bounded watch requests.

    Each request ends on the server after ``timeout_seconds``; the next one
    resumes from the last resource version seen. A stopped watch therefore
    holds its connection for at most one timeout.
    """

    def __init__(
        self,
        resource: Any,
        namespace: str,
        label_selector: str,
        timeout_seconds: int = WATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._resource = resource
        self._namespace = namespace
        self._label_selector = label_selector
        self._timeout_seconds = timeout_seconds
        self._watcher = watch.Watch()
        self._stopped = False
        self._resource_version: str | None = None

    def events(self) -> Iterator[tuple[str, dict[str, Any]]]:
        while not self._stopped:
            for event in self._resource.watch(
                namespace=self._namespace,
                label_selector=self._label_selector,
                resource_version=self._resource_version,
                timeout=self._timeout_seconds,
                watcher=self._watcher,
            ):
                manifest = event["raw_object"]
                version = (manifest.get("metadata") or {}).get("resourceVersion")
                if version:
                    self._resource_version = version
                yield event["type"], manifest
                if self._stopped:
                    return
            logger.debug(
                f"Watch request on '{self._label_selector}' ended, "
                f"resuming from version {self._resource_version}"
            )

    def stop(self) -> None:
        self._stopped = True
        self._watcher.stop()


class OpenShiftClusterClient(ClusterClient):
    """Cluster client for OpenShift using the kubernetes dynamic client.

    Args:
        namespace: Namespace (OpenShift project) to operate in
        api_client: Preconfigured API client; when omitted the in-cluster
            configuration is tried first, then the local kubeconfig

    Raises:
        ClusterNotAvailableError: If no cluster configuration can be loaded
    """

    def __init__(
        self, namespace: str, api_client: client.ApiClient | None = None
    ) -> None:
        self.namespace = namespace
        if api_client is None:
            try:
                config.load_incluster_config()
            except ConfigException:
                try:
                    config.load_kube_config()
                except (ConfigException, OSError) as e:
                    raise ClusterNotAvailableError(reason=str(e)) from e
            api_client = client.ApiClient()
        self._api_client = api_client
        self._dynamic: DynamicClient | None = None

    @property
    def dynamic(self) -> DynamicClient:
        # Discovery contacts the server, so it is deferred until first use
        if self._dynamic is None:
            try:
                self._dynamic = DynamicClient(self._api_client)
            except (ApiException, DynamicApiError, OSError) as e:
                raise ClusterNotAvailableError(reason=str(e)) from e
        return self._dynamic

    def _resource(self, kind: ResourceKind) -> Any:
        return self.dynamic.resources.get(api_version=kind.api_version, kind=kind.kind)

    def get(self, kind: ResourceKind, name: str) -> dict[str, Any] | None:
        try:
            obj = self._resource(kind).get(name=name, namespace=self.namespace)
        except NotFoundError:
            return None
        except DynamicApiError as e:
            raise api_error("get", kind, e) from e
        return obj.to_dict()

    def list(self, kind: ResourceKind, label_selector: str) -> list[dict[str, Any]]:
        try:
            result = self._resource(kind).get(
                namespace=self.namespace, label_selector=label_selector
            )
        except DynamicApiError as e:
            raise api_error("list", kind, e) from e
        return [item.to_dict() for item in result.items]

    def create(self, kind: ResourceKind, manifest: dict[str, Any]) -> dict[str, Any]:
        try:
            obj = self._resource(kind).create(body=manifest, namespace=self.namespace)
        except DynamicApiError as e:
            raise api_error("create", kind, e) from e
        return obj.to_dict()

    def create_or_replace(
        self, kind: ResourceKind, manifest: dict[str, Any]
    ) -> dict[str, Any]:
        name = manifest["metadata"]["name"]
        existing = self.get(kind, name)
        if existing is None:
            return self.create(kind, manifest)

        body = dict(manifest)
        body["metadata"] = {
            **manifest["metadata"],
            "resourceVersion": existing["metadata"].get("resourceVersion"),
        }
        try:
            obj = self._resource(kind).replace(body=body, namespace=self.namespace)
        except DynamicApiError as e:
            raise api_error("replace", kind, e) from e
        return obj.to_dict()

    def delete(self, kind: ResourceKind, name: str) -> bool:
        try:
            self._resource(kind).delete(name=name, namespace=self.namespace)
        except NotFoundError:
            return False
        except DynamicApiError as e:
            raise api_error("delete", kind, e) from e
        return True

    def scale(self, kind: ResourceKind, name: str, replicas: int) -> None:
        try:
            self._resource(kind).patch(
                name=name,
                namespace=self.namespace,
                body={"spec": {"replicas": replicas}},
                content_type="application/merge-patch+json",
            )
        except DynamicApiError as e:
            raise api_error("scale", kind, e) from e

    def _post(
        self,
        path: str,
        body: Any,
        *,
        content_type: str = "application/json",
        query_params: list[tuple[str, str]] | None = None,
    ) -> dict[str, Any]:
        result = self._api_client.call_api(
            path,
            "POST",
            query_params=query_params or [],
            header_params={"Content-Type": content_type, "Accept": "application/json"},
            body=body,
            response_type="object",
            auth_settings=["BearerToken"],
            _return_http_data_only=True,
        )
        return result or {}

    def instantiate_build(
        self, build_config: str, build_request: dict[str, Any]
    ) -> dict[str, Any]:
        kind = ResourceKind.BUILD_CONFIG
        path = (
            f"{kind.path_prefix}/namespaces/{self.namespace}"
            f"/{kind.plural}/{build_config}/instantiate"
        )
        try:
            return self._post(path, build_request)
        except ApiException as e:
            raise api_error("instantiate", kind, e) from e

    def instantiate_binary_build(
        self, build_config: str, filename: str, data: bytes
    ) -> dict[str, Any]:
        kind = ResourceKind.BUILD_CONFIG
        path = (
            f"{kind.path_prefix}/namespaces/{self.namespace}"
            f"/{kind.plural}/{build_config}/instantiatebinary"
        )
        try:
            return self._post(
                path,
                data,
                content_type="application/octet-stream",
                query_params=[("asFile", filename)],
            )
        except ApiException as e:
            raise api_error("instantiatebinary", kind, e) from e

    def deploy_latest(self, deployment_config: str) -> dict[str, Any]:
        kind = ResourceKind.DEPLOYMENT_CONFIG
        path = (
            f"{kind.path_prefix}/namespaces/{self.namespace}"
            f"/{kind.plural}/{deployment_config}/instantiate"
        )
        body = {
            "kind": "DeploymentRequest",
            "apiVersion": kind.api_version,
            "name": deployment_config,
            "latest": True,
            "force": True,
        }
        try:
            return self._post(path, body)
        except ApiException as e:
            raise api_error("rollout", kind, e) from e

    def watch(self, kind: ResourceKind, label_selector: str) -> ClusterWatch:
        return _DynamicWatch(self._resource(kind), self.namespace, label_selector)
