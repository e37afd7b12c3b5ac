"""Two-pass object factory pipeline.

Each step first ensures its declarative object exists, then activates it.
All steps are ensured, in order, before any step is activated, so an
activation may rely on objects created by later steps' ``ensure``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.request import DeploymentRequest

logger = get_logger(__name__)

ResourceHandle = dict[str, Any] | list[dict[str, Any]] | None


class ObjectFactoryStep(ABC):
    """One cluster object (or group of objects) created for a request."""

    name: str = "object"

    @abstractmethod
    def ensure(self, request: DeploymentRequest, app_id: str) -> ResourceHandle:
        """Create or replace the object. Must be idempotent."""

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        """Trigger the object's side effect; no-op for declarative objects."""
        return None


class ObjectFactoryPipeline:
    """Runs steps with ensure-all-then-activate-all ordering.

    Args:
        steps: Steps in execution order
    """

    def __init__(self, steps: list[ObjectFactoryStep]) -> None:
        self.steps = list(steps)

    def run(self, request: DeploymentRequest, app_id: str) -> list[ResourceHandle]:
        """Ensure every step, then activate every step.

        Returns:
            The handles returned by each step's ``ensure``, in order
        """
        handles = []
        for step in self.steps:
            logger.debug(f"Ensuring {step.name} for '{app_id}'")
            handles.append(step.ensure(request, app_id))
        for step in self.steps:
            logger.debug(f"Activating {step.name} for '{app_id}'")
            step.activate(request, app_id)
        return handles
