"""Completion callbacks reacting to finished builds.

Both coordinators are two-state machines: *awaiting* until the first build
event in the Complete phase, then *done*. The terminal action runs once and
the watch is closed exactly once; later events, including duplicate Complete
events, have no effect.

A build ending in another terminal phase, or a watch ending before any
terminal event, releases waiters with ``error`` set but leaves the
coordinator awaiting. The watch is left for the caller to tear down.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.cluster import ClusterClient
from shiftdeck.lib.errors import DeploymentError, RolloutError, WatchClosedError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BuildPhase, BuildRecord
from shiftdeck.models.request import DeploymentRequest, DockerResource

if TYPE_CHECKING:
    from shiftdeck.deploy.watcher import WatchSubscription

logger = get_logger(__name__)


class CoordinatorState(str, Enum):
    AWAITING = "awaiting"
    DONE = "done"


class BuildCompletionCoordinator(ABC):
    """Base for callbacks acting on the first completed build.

    Attributes:
        state: Current state
        error: Exception raised by the terminal action, or the reason the
            build or its watch ended without completing
        build: The completed build that triggered the terminal action
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._finished = threading.Event()
        self.state = CoordinatorState.AWAITING
        self.error: Exception | None = None
        self.build: BuildRecord | None = None

    def __call__(self, record: BuildRecord, close: Callable[[], None]) -> None:
        """Handle one build event delivered by a watch subscription."""
        if record.phase.is_terminal and record.phase is not BuildPhase.COMPLETE:
            self._build_failed(record)
            return
        if record.phase is not BuildPhase.COMPLETE:
            return
        with self._lock:
            if self.state is CoordinatorState.DONE:
                return
            self.state = CoordinatorState.DONE
        self.build = record
        logger.info(f"Build complete: '{record.name}', image: '{record.output_image}'")
        try:
            self.on_complete(record)
        except Exception as e:
            self.error = e
            if isinstance(e, RolloutError):
                logger.error(str(e))
            else:
                logger.exception(f"Action after build '{record.name}' failed: {e}")
        finally:
            close()
            self._done.set()
            self._finished.set()

    def _build_failed(self, record: BuildRecord) -> None:
        with self._lock:
            if self.state is CoordinatorState.DONE or self._finished.is_set():
                return
            self.error = DeploymentError(
                operation="build",
                message=f"Build '{record.name}' finished in phase {record.phase.value}",
            )
        logger.warning(str(self.error))
        self._finished.set()

    def watch_finished(self, subscription: WatchSubscription) -> None:
        """Release waiters when the watch ends before any terminal event."""
        with self._lock:
            if self._finished.is_set():
                return
            self.error = subscription.error or WatchClosedError(
                subscription.label_selector
            )
        self._finished.set()

    @abstractmethod
    def on_complete(self, record: BuildRecord) -> None:
        """Terminal action for the completed build."""

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the build outcome is known.

        Returns:
            True if the terminal action ran, the build failed, or the watch
            ended within ``timeout``; check ``error`` for the latter two
        """
        return self._finished.wait(timeout)


# Rolls out one workload instance
RolloutTrigger = Callable[[props.WorkloadInstance], None]


class RolloutCoordinator(BuildCompletionCoordinator):
    """Rolls out an application's workloads once its image build completes.

    Non-indexed applications have a single workload; indexed applications
    fan out to one independently named workload per index. Every instance is
    attempted even if earlier ones fail, and failures are aggregated into a
    RolloutError.

    Args:
        cluster: Cluster client
        app_id: Application id
        request: The deployment request the build was submitted for
        trigger: Rollout action per instance (defaults to deploying the
            latest version of the instance's workload)
    """

    def __init__(
        self,
        cluster: ClusterClient,
        app_id: str,
        request: DeploymentRequest,
        trigger: RolloutTrigger | None = None,
    ) -> None:
        super().__init__()
        self._cluster = cluster
        self.app_id = app_id
        self.request = request
        self._trigger = trigger or self._deploy_latest

    def _deploy_latest(self, instance: props.WorkloadInstance) -> None:
        logger.info(f"Rolling out latest deployment of '{instance.id}'")
        self._cluster.deploy_latest(instance.id)

    def on_complete(self, record: BuildRecord) -> None:
        self.rollout()

    def rollout(self) -> list[props.WorkloadInstance]:
        """Trigger a rollout of every workload instance.

        The indexed flag and instance count are read from the request at
        this point.

        Returns:
            The instances rolled out

        Raises:
            RolloutError: If any instance failed, after all were attempted
        """
        instances = props.workload_instances(self.app_id, self.request)
        failures: dict[str, Exception] = {}
        for instance in instances:
            try:
                self._trigger(instance)
            except Exception as e:
                logger.debug(f"Rollout of '{instance.id}' failed: {e}")
                failures[instance.id] = e
        if failures:
            raise RolloutError(failures)
        return instances


# Launches a task from a request whose resource is a built image
TaskLaunchAction = Callable[[DeploymentRequest], None]


class TaskLaunchCoordinator(BuildCompletionCoordinator):
    """Launches a task once its image build completes.

    The launched request points at the build's output image instead of the
    original artifact; everything else is preserved.

    Args:
        request: The launch request the build was submitted for
        launch: Action launching a container from a pre-built image
    """

    def __init__(self, request: DeploymentRequest, launch: TaskLaunchAction) -> None:
        super().__init__()
        self.request = request
        self._launch = launch

    def on_complete(self, record: BuildRecord) -> None:
        if not record.output_image:
            raise ValueError(f"Build '{record.name}' completed without an image")
        self._launch(self.request.with_resource(DockerResource(image=record.output_image)))
