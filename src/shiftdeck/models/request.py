"""Pydantic models for deployment requests and application artifacts.

A deployment request is created once per deploy/launch call and is
immutable afterwards; the ``with_*`` helpers return new values with every
other field preserved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MavenResource(BaseModel):
    """Maven artifact resolved to a local file.

    Attributes:
        group_id: Maven groupId (e.g., org.example)
        artifact_id: Maven artifactId
        version: Artifact version
        classifier: Optional classifier (e.g., exec)
        extension: Artifact packaging extension
        path: Local path of the resolved artifact file
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["maven"] = "maven"
    group_id: str = Field(..., description="Maven groupId")
    artifact_id: str = Field(..., description="Maven artifactId")
    version: str = Field(..., description="Artifact version")
    classifier: str | None = Field(default=None, description="Artifact classifier")
    extension: str = Field(default="jar", description="Artifact file extension")
    path: str | None = Field(
        default=None, description="Local path of the resolved artifact"
    )

    @property
    def filename(self) -> str:
        """Artifact file name as published in a Maven repository."""
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact_id}-{self.version}{suffix}.{self.extension}"

    @property
    def coordinates(self) -> str:
        """Coordinates in ``group:artifact:extension[:classifier]:version`` form."""
        parts = [self.group_id, self.artifact_id, self.extension]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.version)
        return ":".join(parts)

    def local_path(self) -> Path | None:
        return Path(self.path).expanduser() if self.path else None

    def __str__(self) -> str:
        return f"maven://{self.coordinates}"


class FileResource(BaseModel):
    """Binary application artifact on the local file system."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["file"] = "file"
    path: str = Field(..., description="Path of the artifact file")

    @property
    def filename(self) -> str:
        return Path(self.path).name

    def local_path(self) -> Path | None:
        return Path(self.path).expanduser()

    def __str__(self) -> str:
        return f"file://{self.path}"


class DockerResource(BaseModel):
    """Reference to an existing, already built container image."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["docker"] = "docker"
    image: str = Field(..., description="Image reference (registry/repo:tag)")

    @field_validator("image")
    @classmethod
    def strip_scheme(cls, v: str) -> str:
        """Accept ``docker:`` prefixed URIs and store the bare reference."""
        if v.startswith("docker://"):
            return v[len("docker://") :]
        if v.startswith("docker:"):
            return v[len("docker:") :]
        return v

    def __str__(self) -> str:
        return f"docker:{self.image}"


ArtifactResource = Annotated[
    MavenResource | FileResource | DockerResource, Field(discriminator="kind")
]


class DeploymentRequest(BaseModel):
    """Immutable request to deploy or launch one application.

    Attributes:
        name: Application name from the app definition
        properties: Application-level properties
        deployment_properties: Platform-level deployment properties
        resource: The artifact to deploy
        command_line_args: Arguments passed to the application
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Application name")
    properties: dict[str, str] = Field(
        default_factory=dict, description="Application properties"
    )
    deployment_properties: dict[str, str] = Field(
        default_factory=dict, description="Deployment properties"
    )
    resource: ArtifactResource = Field(..., description="Artifact locator")
    command_line_args: tuple[str, ...] = Field(
        default=(), description="Command line arguments"
    )

    @field_validator("properties", "deployment_properties", mode="before")
    @classmethod
    def stringify_values(cls, v: object) -> object:
        """Coerce scalar property values (from YAML) to strings."""
        if isinstance(v, dict):
            return {
                str(key): _stringify(value)
                for key, value in v.items()
                if value is not None
            }
        return v

    @property
    def is_buildable(self) -> bool:
        """Whether the resource has to be built into an image first."""
        return isinstance(self.resource, (MavenResource, FileResource))

    def with_deployment_properties(self, updates: dict[str, str]) -> DeploymentRequest:
        """Return a copy with extra deployment properties merged in."""
        merged = {**self.deployment_properties, **updates}
        return self.model_copy(update={"deployment_properties": merged})

    def with_resource(self, resource: ArtifactResource) -> DeploymentRequest:
        """Return a copy pointing at a different artifact."""
        return self.model_copy(update={"resource": resource})


def _stringify(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
