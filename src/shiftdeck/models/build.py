"""Pydantic models for builds and build strategies.

Build strategies form a closed, tagged set: exactly one variant is selected
per request and each variant carries only the parameters it needs.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from shiftdeck.config.defaults import (
    DEFAULT_ARTIFACT_DOCKERFILE_PATH,
    DEFAULT_GIT_DOCKERFILE_PATH,
    DEFAULT_GIT_REF,
)

# Name of the build environment variable carrying the artifact fingerprint
BUILD_ID_ENV_VAR = "shiftdeck_build_id"

_SCM_PREFIX_PATTERN = re.compile(r"^scm:[a-z]+:")


class BuildPhase(str, Enum):
    """Lifecycle phase of a build run, as reported by the platform."""

    NEW = "New"
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETE = "Complete"
    FAILED = "Failed"
    ERROR = "Error"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further phase transitions follow."""
        return self in (
            BuildPhase.COMPLETE,
            BuildPhase.FAILED,
            BuildPhase.ERROR,
            BuildPhase.CANCELLED,
        )

    @classmethod
    def parse(cls, value: str | None) -> BuildPhase:
        """Parse a platform phase string; unknown values map to NEW."""
        for phase in cls:
            if value == phase.value:
                return phase
        return cls.NEW


class BuildRecord(BaseModel):
    """Platform-observed state of one build run.

    Build records are created by the platform and only ever read here.

    Attributes:
        name: Build name (e.g., my-app-3)
        labels: Labels copied from the build pipeline
        phase: Current lifecycle phase
        fingerprint: Artifact fingerprint stored in the build environment
        output_image: Output image reference, set once the build is complete
    """

    model_config = ConfigDict(frozen=True)

    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    phase: BuildPhase = BuildPhase.NEW
    fingerprint: str | None = None
    output_image: str | None = None

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> BuildRecord:
        """Build a record from a ``build.openshift.io/v1`` Build object."""
        metadata = manifest.get("metadata") or {}
        status = manifest.get("status") or {}
        strategy = (manifest.get("spec") or {}).get("strategy") or {}

        fingerprint = None
        for key in ("dockerStrategy", "sourceStrategy"):
            for env in (strategy.get(key) or {}).get("env") or []:
                if env.get("name") == BUILD_ID_ENV_VAR:
                    fingerprint = env.get("value")

        phase = BuildPhase.parse(status.get("phase"))
        output_image = status.get("outputDockerImageReference")
        return cls(
            name=metadata.get("name", ""),
            labels=metadata.get("labels") or {},
            phase=phase,
            fingerprint=fingerprint,
            output_image=output_image if phase is BuildPhase.COMPLETE else None,
        )


class GitReference(BaseModel):
    """Git source location for a build.

    Attributes:
        uri: Repository URI or Maven SCM connection string
        ref: Branch, tag or commit to build
    """

    model_config = ConfigDict(frozen=True)

    uri: str
    ref: str = DEFAULT_GIT_REF

    @property
    def parsed_uri(self) -> str:
        """URI normalized so the platform's Git fetcher can clone over SSH.

        Everything up to the last ``@`` is replaced with ``ssh://git@``:

            scm:git:git@github.com:org/repo.git -> ssh://git@github.com:org/repo.git

        Connection strings without credentials only lose their ``scm:git:``
        prefix.
        """
        if not self.uri.strip():
            return self.uri
        if "@" in self.uri:
            return re.sub(r"^.*@", "ssh://git@", self.uri, count=1)
        return _SCM_PREFIX_PATTERN.sub("", self.uri)


class BuildStrategyKind(str, Enum):
    """The four mutually exclusive build strategies, in priority order."""

    GIT_REPO_WITH_DOCKERFILE_PROPERTY = "git-repo-with-dockerfile-property"
    GIT_REPO_DISCOVERED_IN_ARTIFACT = "git-repo-discovered-in-artifact"
    INLINE_OR_FILE_DOCKERFILE = "inline-or-file-dockerfile"
    BINARY_INPUT_SOURCE_IMAGE = "binary-input-source-image"


class GitRepoWithDockerfileProperty(BaseModel):
    """Docker build from a Git repository declared in application properties."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BuildStrategyKind.GIT_REPO_WITH_DOCKERFILE_PROPERTY] = (
        BuildStrategyKind.GIT_REPO_WITH_DOCKERFILE_PROPERTY
    )
    git: GitReference
    dockerfile_path: str = DEFAULT_GIT_DOCKERFILE_PATH
    source_secret: str | None = None


class GitRepoDiscoveredInArtifact(BaseModel):
    """Docker build from the SCM repository recorded in the artifact's POM."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BuildStrategyKind.GIT_REPO_DISCOVERED_IN_ARTIFACT] = (
        BuildStrategyKind.GIT_REPO_DISCOVERED_IN_ARTIFACT
    )
    git: GitReference
    dockerfile_path: str = DEFAULT_ARTIFACT_DOCKERFILE_PATH
    source_secret: str | None = None


class InlineOrFileDockerfile(BaseModel):
    """Docker build from an inline Dockerfile definition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BuildStrategyKind.INLINE_OR_FILE_DOCKERFILE] = (
        BuildStrategyKind.INLINE_OR_FILE_DOCKERFILE
    )
    dockerfile: str


class BinaryInputSourceImage(BaseModel):
    """Source-to-image build fed with the artifact bytes as binary input."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BuildStrategyKind.BINARY_INPUT_SOURCE_IMAGE] = (
        BuildStrategyKind.BINARY_INPUT_SOURCE_IMAGE
    )
    builder_image: str
    artifact_filename: str


BuildStrategy = Annotated[
    GitRepoWithDockerfileProperty
    | GitRepoDiscoveredInArtifact
    | InlineOrFileDockerfile
    | BinaryInputSourceImage,
    Field(discriminator="kind"),
]
