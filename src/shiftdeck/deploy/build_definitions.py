"""Build pipeline definitions, one shape per build strategy.

Every build pipeline outputs to the image stream tag ``{app_id}:{tag}``.
Source builds receive the artifact fingerprint and Maven coordinates as
build-run environment variables; binary builds carry the fingerprint on the
pipeline itself since their runs are not started with a BuildRequest.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from shiftdeck.deploy import properties as props
from shiftdeck.models.build import (
    BUILD_ID_ENV_VAR,
    BinaryInputSourceImage,
    BuildStrategy,
    GitRepoDiscoveredInArtifact,
    GitRepoWithDockerfileProperty,
    InlineOrFileDockerfile,
)
from shiftdeck.models.request import DeploymentRequest, MavenResource
from shiftdeck.models.settings import DeployerSettings, RemoteRepository

APP_NAME_ENV_VAR = "app_name"
APP_GROUP_ID_ENV_VAR = "app_groupId"
APP_ARTIFACT_ID_ENV_VAR = "app_artifactId"
APP_VERSION_ENV_VAR = "app_version"
RESOURCE_HOST_ENV_VAR = "app_resource_host"
RESOURCE_URL_ENV_VAR = "app_resource_url"
AUTH_USERNAME_ENV_VAR = "repo_auth_username"
AUTH_PASSWORD_ENV_VAR = "repo_auth_password"

BUILD_API_VERSION = "build.openshift.io/v1"


def _env(name: str, value: str | None) -> dict[str, str]:
    return {"name": name, "value": value or ""}


def first_remote_repository(
    repositories: dict[str, RemoteRepository],
) -> RemoteRepository | None:
    """The repository artifacts are downloaded from: first by sorted id."""
    if not repositories:
        return None
    return repositories[sorted(repositories)[0]]


def remote_artifact_url(repository: RemoteRepository, resource: MavenResource) -> str:
    """URL of a Maven artifact in a remote repository.

    Example:
        https://repo.example.com/releases + org.example:app:jar:1.0 ->
        https://repo.example.com/releases/org/example/app/1.0/app-1.0.jar
    """
    group_path = resource.group_id.replace(".", "/")
    return (
        f"{repository.url}/{group_path}/{resource.artifact_id}/"
        f"{resource.version}/{resource.filename}"
    )


class BuildDefinitionBuilder:
    """Builds BuildConfig and BuildRequest manifests.

    Args:
        settings: Deployer settings (image tag, environment, Maven repos)
    """

    def __init__(self, settings: DeployerSettings) -> None:
        self._settings = settings

    def output_image_tag(self, app_id: str, request: DeploymentRequest) -> str:
        """Name of the image stream tag the build outputs to."""
        return f"{app_id}:{props.image_tag(request, self._settings)}"

    def build_environment(
        self, request: DeploymentRequest, app_id: str, fingerprint: str
    ) -> list[dict[str, str]]:
        """Environment injected into a source build run.

        Deployer-level variables come first, followed by the fingerprint,
        application name and, for Maven artifacts, the coordinates and
        download location.
        """
        env = props.environment_variables(self._settings.environment_variables)
        env.append(_env(BUILD_ID_ENV_VAR, fingerprint))
        env.append(_env(APP_NAME_ENV_VAR, app_id))

        resource = request.resource
        if not isinstance(resource, MavenResource):
            return env

        env.append(_env(APP_GROUP_ID_ENV_VAR, resource.group_id))
        env.append(_env(APP_ARTIFACT_ID_ENV_VAR, resource.artifact_id))
        env.append(_env(APP_VERSION_ENV_VAR, resource.version))

        repository = first_remote_repository(self._settings.maven.remote_repositories)
        if repository is not None:
            auth = repository.auth
            env.append(_env(AUTH_USERNAME_ENV_VAR, auth.username if auth else None))
            env.append(_env(AUTH_PASSWORD_ENV_VAR, auth.password if auth else None))
            env.append(_env(RESOURCE_HOST_ENV_VAR, urlparse(repository.url).hostname))
            env.append(
                _env(RESOURCE_URL_ENV_VAR, remote_artifact_url(repository, resource))
            )
        return env

    def build_request(
        self, request: DeploymentRequest, app_id: str, fingerprint: str
    ) -> dict[str, Any]:
        """BuildRequest used to instantiate a source build run."""
        return {
            "kind": "BuildRequest",
            "apiVersion": BUILD_API_VERSION,
            "metadata": {"name": app_id},
            "env": self.build_environment(request, app_id, fingerprint),
        }

    def build_config(
        self,
        strategy: BuildStrategy,
        request: DeploymentRequest,
        app_id: str,
        labels: dict[str, str],
        fingerprint: str,
    ) -> dict[str, Any]:
        """BuildConfig manifest for the selected strategy."""
        spec: dict[str, Any] = {
            "output": {
                "to": {
                    "kind": "ImageStreamTag",
                    "name": self.output_image_tag(app_id, request),
                }
            },
        }

        if isinstance(
            strategy, (GitRepoWithDockerfileProperty, GitRepoDiscoveredInArtifact)
        ):
            source: dict[str, Any] = {
                "type": "Git",
                "git": {"uri": strategy.git.parsed_uri, "ref": strategy.git.ref},
            }
            if strategy.source_secret:
                source["sourceSecret"] = {"name": strategy.source_secret}
            spec["source"] = source
            spec["strategy"] = {
                "type": "Docker",
                "dockerStrategy": {"dockerfilePath": strategy.dockerfile_path},
            }
            spec["triggers"] = [{"type": "ImageChange", "imageChange": {}}]
        elif isinstance(strategy, InlineOrFileDockerfile):
            spec["source"] = {"type": "Dockerfile", "dockerfile": strategy.dockerfile}
            spec["strategy"] = {"type": "Docker", "dockerStrategy": {}}
            spec["triggers"] = [{"type": "ImageChange", "imageChange": {}}]
        elif isinstance(strategy, BinaryInputSourceImage):
            spec["source"] = {
                "type": "Binary",
                "binary": {"asFile": strategy.artifact_filename},
            }
            spec["strategy"] = {
                "type": "Source",
                "sourceStrategy": {
                    "from": {"kind": "DockerImage", "name": strategy.builder_image},
                    "env": [
                        _env(BUILD_ID_ENV_VAR, fingerprint),
                        _env(APP_NAME_ENV_VAR, app_id),
                    ],
                },
            }
            spec["triggers"] = []

        return {
            "apiVersion": BUILD_API_VERSION,
            "kind": "BuildConfig",
            "metadata": {"name": app_id, "labels": dict(labels)},
            "spec": spec,
        }
