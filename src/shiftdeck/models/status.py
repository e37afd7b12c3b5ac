"""Status models for deployed applications and launched tasks."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from shiftdeck.models.build import BuildPhase


class DeploymentState(str, Enum):
    """Aggregate state of a deployed application."""

    UNKNOWN = "unknown"
    BUILDING = "building"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    PARTIAL = "partial"
    FAILED = "failed"


class InstanceStatus(BaseModel):
    """Status of one application pod.

    Attributes:
        id: Pod name
        deployment_id: Workload the pod belongs to
        phase: Pod phase reported by the platform
        ready: Whether every container is ready
        build_phase: Phase of the latest build for the application
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Pod name")
    deployment_id: str | None = Field(default=None, description="Owning workload")
    phase: str = Field(default="Unknown", description="Pod phase")
    ready: bool = Field(default=False, description="All containers ready")
    build_phase: BuildPhase | None = Field(
        default=None, description="Latest build phase"
    )


class AppStatus(BaseModel):
    """Status of a deployed application."""

    model_config = ConfigDict(extra="forbid")

    app_id: str = Field(..., description="Application id")
    state: DeploymentState = Field(..., description="Aggregate state")
    build_phase: BuildPhase | None = Field(
        default=None, description="Phase of the latest build"
    )
    instances: list[InstanceStatus] = Field(
        default_factory=list, description="Per-pod status"
    )


class TaskState(str, Enum):
    """State of a launched task."""

    UNKNOWN = "unknown"
    BUILDING = "building"
    LAUNCHING = "launching"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class TaskStatus(BaseModel):
    """Status of a launched task."""

    model_config = ConfigDict(extra="forbid")

    task_id: str = Field(..., description="Task id")
    state: TaskState = Field(..., description="Task state")
    build_phase: BuildPhase | None = Field(
        default=None, description="Phase of the latest build"
    )
