"""Build submission: create-or-replace the pipeline, then start a build run."""

from __future__ import annotations

from typing import Any

from shiftdeck.deploy.artifacts import ArtifactResolver
from shiftdeck.deploy.build_definitions import BuildDefinitionBuilder
from shiftdeck.deploy.cluster import ClusterClient, ResourceKind
from shiftdeck.deploy.pipeline import ObjectFactoryStep
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BinaryInputSourceImage, BuildStrategy
from shiftdeck.models.request import DeploymentRequest, FileResource, MavenResource

logger = get_logger(__name__)


class BuildSubmitter(ObjectFactoryStep):
    """Pipeline step for the build pipeline object and its build run.

    ``ensure`` replaces an existing build pipeline in place and never
    deletes it, so records of earlier builds stay intact. ``activate``
    instantiates a source build with a BuildRequest, or for binary-input
    builds streams the artifact bytes as the build input.

    Args:
        cluster: Cluster client
        definitions: Builder for BuildConfig/BuildRequest manifests
        resolver: Artifact resolver for binary uploads
        strategy: The selected build strategy
        labels: Identity labels for the build pipeline
        fingerprint: Artifact fingerprint

    Raises:
        BuildSubmissionError: From either phase, when the cluster rejects the
            request
    """

    name = "build"

    def __init__(
        self,
        cluster: ClusterClient,
        definitions: BuildDefinitionBuilder,
        resolver: ArtifactResolver,
        strategy: BuildStrategy,
        labels: dict[str, str],
        fingerprint: str,
    ) -> None:
        self._cluster = cluster
        self._definitions = definitions
        self._resolver = resolver
        self.strategy = strategy
        self.labels = labels
        self.fingerprint = fingerprint
        self.build_name: str | None = None

    def ensure(self, request: DeploymentRequest, app_id: str) -> dict[str, Any]:
        manifest = self._definitions.build_config(
            self.strategy, request, app_id, self.labels, self.fingerprint
        )
        return self._cluster.create_or_replace(ResourceKind.BUILD_CONFIG, manifest)

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        if isinstance(self.strategy, BinaryInputSourceImage):
            resource = request.resource
            if not isinstance(resource, (MavenResource, FileResource)):
                raise TypeError(f"Binary builds need an artifact, got {resource}")
            data = self._resolver.read_bytes(resource)
            logger.debug(
                f"Uploading {len(data)} bytes as '{self.strategy.artifact_filename}' "
                f"to build '{app_id}'"
            )
            build = self._cluster.instantiate_binary_build(
                app_id, self.strategy.artifact_filename, data
            )
        else:
            build_request = self._definitions.build_request(
                request, app_id, self.fingerprint
            )
            build = self._cluster.instantiate_build(app_id, build_request)
        self.build_name = (build.get("metadata") or {}).get("name")
        logger.debug(f"Started build '{self.build_name}' for '{app_id}'")
