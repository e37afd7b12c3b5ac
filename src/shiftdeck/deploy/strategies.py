"""Build strategy selection.

Exactly one of four strategies is chosen per request, in a fixed priority
order; the binary-input strategy is the unconditional fallback:

1. Git repository declared in application properties
2. Git repository discovered in the artifact's POM, when the artifact also
   contains a Dockerfile
3. Inline or file Dockerfile from deployment properties
4. Binary input with a source-to-image builder
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from shiftdeck.config.defaults import (
    DEFAULT_ARTIFACT_DOCKERFILE_PATH,
    DEFAULT_GIT_DOCKERFILE_PATH,
    DEFAULT_GIT_REF,
)
from shiftdeck.deploy import properties as props
from shiftdeck.deploy.artifacts import ArtifactResolver
from shiftdeck.deploy.dockerfile import generate_dockerfile, is_bundled_dockerfile
from shiftdeck.lib.errors import DeploymentError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import (
    BinaryInputSourceImage,
    BuildStrategy,
    GitReference,
    GitRepoDiscoveredInArtifact,
    GitRepoWithDockerfileProperty,
    InlineOrFileDockerfile,
)
from shiftdeck.models.request import DeploymentRequest, FileResource, MavenResource
from shiftdeck.models.settings import DeployerSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArtifactInspection:
    """What the artifact reveals about its own source.

    Attributes:
        scm: SCM reference from the artifact's project metadata, if any
        has_dockerfile: Whether the artifact contains the Dockerfile that
            was looked for
    """

    scm: GitReference | None = None
    has_dockerfile: bool = False


# Called with the Dockerfile path to look for inside the artifact
ArtifactInspector = Callable[[str], ArtifactInspection]


class StrategySelector:
    """Picks the build strategy for a deployment request.

    Args:
        settings: Deployer settings supplying defaults
    """

    def __init__(self, settings: DeployerSettings) -> None:
        self._settings = settings

    def select(
        self,
        request: DeploymentRequest,
        inspect: ArtifactInspector | None = None,
    ) -> BuildStrategy:
        """Select exactly one build strategy.

        Strategies are evaluated in priority order and evaluation stops at
        the first match; ``inspect`` is only called when the artifact-based
        strategy is considered.

        Args:
            request: The deployment request
            inspect: Optional artifact inspection callback

        Returns:
            The selected strategy variant with its parameters

        Raises:
            DeploymentError: If a Dockerfile path exists but cannot be read
        """
        strategy = (
            self._from_declared_git_repo(request)
            or self._from_artifact_git_repo(request, inspect)
            or self._from_dockerfile_property(request)
        )
        if strategy is None:
            strategy = self._binary_input(request)
        logger.debug(f"Selected build strategy '{strategy.kind.value}' for {request.name}")
        return strategy

    def _git_source_secret(self, app_props: dict[str, str]) -> str | None:
        secret = app_props.get(props.BUILD_GIT_SECRET)
        if secret:
            return secret
        return props.get_environment_variable(
            self._settings.environment_variables, props.BUILD_GIT_SECRET
        )

    def _from_declared_git_repo(
        self, request: DeploymentRequest
    ) -> GitRepoWithDockerfileProperty | None:
        app_props = props.application_properties(request)
        uri = app_props.get(props.BUILD_GIT_URI)
        if uri is None:
            return None
        return GitRepoWithDockerfileProperty(
            git=GitReference(
                uri=uri, ref=app_props.get(props.BUILD_GIT_REF) or DEFAULT_GIT_REF
            ),
            dockerfile_path=app_props.get(props.BUILD_GIT_DOCKERFILE)
            or DEFAULT_GIT_DOCKERFILE_PATH,
            source_secret=self._git_source_secret(app_props),
        )

    def _from_artifact_git_repo(
        self, request: DeploymentRequest, inspect: ArtifactInspector | None
    ) -> GitRepoDiscoveredInArtifact | None:
        if inspect is None:
            return None
        app_props = props.application_properties(request)
        dockerfile_path = (
            app_props.get(props.BUILD_GIT_DOCKERFILE) or DEFAULT_ARTIFACT_DOCKERFILE_PATH
        )
        inspection = inspect(dockerfile_path)
        if inspection.scm is None or not inspection.has_dockerfile:
            return None
        return GitRepoDiscoveredInArtifact(
            git=inspection.scm,
            dockerfile_path=dockerfile_path,
            source_secret=self._git_source_secret(app_props),
        )

    def _from_dockerfile_property(
        self, request: DeploymentRequest
    ) -> InlineOrFileDockerfile | None:
        deploy_props = props.deployment_properties(request)
        if props.BUILD_DOCKERFILE not in deploy_props:
            return None
        value = deploy_props[props.BUILD_DOCKERFILE]
        return InlineOrFileDockerfile(dockerfile=self.resolve_dockerfile(value, request))

    def resolve_dockerfile(self, value: str, request: DeploymentRequest) -> str:
        """Turn a Dockerfile property value into an inline definition.

        A path to an existing file is replaced by the file contents, a bundled
        template name by the rendered template, and anything else is taken as
        an inline definition. A blank value selects the default template.

        Raises:
            DeploymentError: If the file exists but cannot be read
        """
        if not value.strip():
            value = self._settings.default_dockerfile
        if is_bundled_dockerfile(value):
            return generate_dockerfile(
                value, port=props.container_port(request, self._settings)
            )
        path = Path(value).expanduser()
        try:
            is_file = path.is_file()
        except (OSError, ValueError):
            is_file = False
        if not is_file:
            return value
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise DeploymentError(
                operation="build",
                message=f"Could not read Dockerfile at {value}: {e}",
            ) from e

    def _binary_input(self, request: DeploymentRequest) -> BinaryInputSourceImage:
        resource = request.resource
        if isinstance(resource, (MavenResource, FileResource)):
            filename = resource.filename
        else:
            filename = "app.jar"
        builder_image = props.deployment_properties(request).get(
            props.BUILD_S2I_IMAGE, self._settings.default_s2i_image
        )
        return BinaryInputSourceImage(
            builder_image=builder_image, artifact_filename=filename
        )


def artifact_inspector(
    resolver: ArtifactResolver, resource: MavenResource | FileResource
) -> ArtifactInspector:
    """Create an inspection callback backed by an artifact resolver."""

    def _inspect(dockerfile_path: str) -> ArtifactInspection:
        scm = resolver.scm_reference(resource)
        if scm is None:
            return ArtifactInspection()
        return ArtifactInspection(
            scm=scm, has_dockerfile=resolver.contains_file(resource, dockerfile_path)
        )

    return _inspect

