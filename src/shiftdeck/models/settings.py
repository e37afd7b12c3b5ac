"""Pydantic models for deployer-wide settings.

Settings apply to every request handled by a deployer or task launcher;
per-request overrides come from deployment properties.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shiftdeck.config.defaults import DEPLOYER_DEFAULTS

ENV_ENTRY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*=.*$", re.DOTALL)


class RepositoryAuth(BaseModel):
    """Credentials for a remote Maven repository."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, description="Repository username")
    password: str | None = Field(default=None, description="Repository password")


class RemoteRepository(BaseModel):
    """Remote Maven repository.

    Attributes:
        url: Base URL of the repository (e.g., https://repo.example.com/releases)
        auth: Optional credentials passed to source builds
    """

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., description="Repository base URL")
    auth: RepositoryAuth | None = Field(default=None, description="Credentials")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that the repository URL is absolute."""
        if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/]+", v):
            raise ValueError(f"Invalid remote repository URL: {v}")
        return v.rstrip("/")


class MavenSettings(BaseModel):
    """Maven resolution settings used for build-run environments."""

    model_config = ConfigDict(extra="forbid")

    remote_repositories: dict[str, RemoteRepository] = Field(
        default_factory=dict, description="Remote repositories keyed by id"
    )
    local_repository: str = Field(
        default="~/.m2/repository", description="Local repository cache"
    )


class DeployerSettings(BaseModel):
    """Deployer configuration.

    Attributes:
        namespace: Cluster namespace (OpenShift project) to deploy into
        force_build: Rebuild every artifact, ignoring reusable builds
        default_image_tag: Tag of the image stream tag builds output to
        default_s2i_image: Builder image for binary-input builds
        default_dockerfile: Bundled Dockerfile used by source builds
        default_routing_subdomain: Subdomain used to derive route hosts
        create_route: Create routes unless a request says otherwise
        container_command: Command for images built from binary input
        docker_registry_override: Registry replacing the one in image references
        image_project_name: Project replacing the one in image references
        environment_variables: ``NAME=value`` entries added to builds
        scale_down_timeout: Seconds to wait for scale-down during undeploy
        undeploy_delay: Seconds to wait after deleting resources
        default_port: Container port exposed by services and routes
        maven: Maven repository settings
    """

    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(default="default", description="Target namespace")
    force_build: bool = Field(default=False, description="Always rebuild")
    default_image_tag: str = Field(
        default=str(DEPLOYER_DEFAULTS["default_image_tag"]),
        description="Default image stream tag",
    )
    default_s2i_image: str = Field(
        default=str(DEPLOYER_DEFAULTS["default_s2i_image"]),
        description="Builder image for binary builds",
    )
    default_dockerfile: str = Field(
        default=str(DEPLOYER_DEFAULTS["default_dockerfile"]),
        description="Bundled Dockerfile for source builds",
    )
    default_routing_subdomain: str = Field(
        default=str(DEPLOYER_DEFAULTS["default_routing_subdomain"]),
        description="Routing subdomain for route hosts",
    )
    create_route: bool = Field(default=False, description="Create routes by default")
    container_command: str = Field(
        default=str(DEPLOYER_DEFAULTS["container_command"]),
        description="Command for binary-built images",
    )
    docker_registry_override: str | None = Field(
        default=None, description="Registry override for image references"
    )
    image_project_name: str | None = Field(
        default=None, description="Project override for image references"
    )
    environment_variables: list[str] = Field(
        default_factory=list, description="NAME=value build environment entries"
    )
    scale_down_timeout: float = Field(
        default=float(DEPLOYER_DEFAULTS["scale_down_timeout"]),
        gt=0,
        description="Scale-down wait bound in seconds",
    )
    undeploy_delay: float = Field(
        default=float(DEPLOYER_DEFAULTS["undeploy_delay"]),
        ge=0,
        description="Delay after undeploy in seconds",
    )
    default_port: int = Field(
        default=int(DEPLOYER_DEFAULTS["default_port"]),
        ge=1,
        le=65535,
        description="Default container port",
    )
    maven: MavenSettings = Field(
        default_factory=MavenSettings, description="Maven settings"
    )

    @field_validator("environment_variables")
    @classmethod
    def validate_environment_variables(cls, v: list[str]) -> list[str]:
        """Validate ``NAME=value`` entries."""
        for entry in v:
            if not ENV_ENTRY_PATTERN.match(entry):
                raise ValueError(f"Invalid environment variable declared: {entry}")
        return v
