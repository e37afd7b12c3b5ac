"""Tests for the two-pass object factory pipeline."""

from __future__ import annotations

from shiftdeck.deploy.pipeline import ObjectFactoryPipeline, ObjectFactoryStep
from shiftdeck.models.request import DeploymentRequest, DockerResource


class RecordingStep(ObjectFactoryStep):
    def __init__(self, name: str, log: list[str]) -> None:
        self.name = name
        self._log = log

    def ensure(self, request: DeploymentRequest, app_id: str) -> dict[str, str]:
        self._log.append(f"ensure:{self.name}")
        return {"name": self.name}

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        self._log.append(f"activate:{self.name}")


class DeclarativeStep(ObjectFactoryStep):
    name = "declarative"

    def ensure(self, request: DeploymentRequest, app_id: str) -> None:
        return None


def test_all_ensures_run_before_any_activate() -> None:
    """Test that every step is ensured before any step is activated."""
    log: list[str] = []
    request = DeploymentRequest(name="app", resource=DockerResource(image="nginx"))
    handles = ObjectFactoryPipeline(
        [RecordingStep("build", log), RecordingStep("deployment", log)]
    ).run(request, "app")

    assert log == [
        "ensure:build",
        "ensure:deployment",
        "activate:build",
        "activate:deployment",
    ]
    assert handles == [{"name": "build"}, {"name": "deployment"}]


def test_default_activate_is_noop() -> None:
    """Test that declarative steps need no activation."""
    request = DeploymentRequest(name="app", resource=DockerResource(image="nginx"))
    assert ObjectFactoryPipeline([DeclarativeStep()]).run(request, "app") == [None]
