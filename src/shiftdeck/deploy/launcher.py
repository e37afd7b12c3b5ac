"""Task launcher: one-shot containers, built from artifacts when needed."""

from __future__ import annotations

from typing import Any

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.cluster import ResourceKind
from shiftdeck.deploy.deployer import BuildingDeployer, latest_build
from shiftdeck.deploy.pipeline import ObjectFactoryPipeline
from shiftdeck.deploy.resources import instance_labels
from shiftdeck.deploy.rollout import TaskLaunchCoordinator
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BuildPhase, BuildRecord
from shiftdeck.models.request import DeploymentRequest, DockerResource
from shiftdeck.models.status import TaskState, TaskStatus

logger = get_logger(__name__)

_POD_PHASE_STATES = {
    "Pending": TaskState.LAUNCHING,
    "Running": TaskState.RUNNING,
    "Succeeded": TaskState.COMPLETE,
    "Failed": TaskState.FAILED,
}


def task_selector(task_id: str) -> str:
    """Label selector matching the objects of one task run."""
    return f"{props.DEPLOYMENT_ID_LABEL}={task_id}"


class TaskLauncher(BuildingDeployer):
    """Launches tasks as single pods that run to completion.

    The build pipeline of a task is named after its application id, so
    repeated launches of the same artifact reuse one image. Each launch gets
    its own task id, which names the pod and labels the builds it started.
    """

    def launch(self, request: DeploymentRequest) -> str:
        """Launch a task.

        Pre-built images start a pod right away. Artifacts start a pod
        immediately when a reusable build exists, or when rebuilding is
        forbidden (from the latest image, or the image stream tag named
        after the application). Otherwise the image is built first and the
        pod starts once the build completes.

        Args:
            request: Launch request

        Returns:
            The task id

        Raises:
            InvalidRequestError: For definition-time errors
            ArtifactReadError: If the artifact cannot be read
            DeploymentError: If the cluster rejects an object
        """
        task_id = props.create_task_id(request)
        app_id = props.create_app_id(request)
        labels = instance_labels(props.identity_labels(app_id, request), task_id)

        if isinstance(request.resource, DockerResource):
            self.create_pod(request, task_id, labels)
            return task_id

        resource = request.resource
        fingerprint = self.fingerprinter.fingerprint(resource)
        if self.oracle.exists(request, app_id, fingerprint):
            request = self._reused_build_request(request, app_id)
            build = self.oracle.find_reusable(request, app_id, fingerprint)
            if build is not None and not build.phase.is_terminal:
                coordinator = self._launch_coordinator(request, task_id, labels)
                self._track(task_id, coordinator)
                step = self._existing_build_watch_step(
                    app_id, build, coordinator, registry_key=task_id
                )
                ObjectFactoryPipeline([step]).run(request, app_id)
            else:
                image = (build.output_image if build else None) or app_id
                logger.info(f"Launching task '{task_id}' from existing image '{image}'")
                self.create_pod(
                    request.with_resource(DockerResource(image=image)), task_id, labels
                )
            return task_id

        request, steps, coordinator = self._build_pipeline_steps(
            request,
            app_id,
            labels,
            fingerprint,
            lambda req: self._launch_coordinator(req, task_id, labels),
            registry_key=task_id,
        )
        self._track(task_id, coordinator)
        ObjectFactoryPipeline(steps).run(request, app_id)
        return task_id

    def _launch_coordinator(
        self, request: DeploymentRequest, task_id: str, labels: dict[str, str]
    ) -> TaskLaunchCoordinator:
        return TaskLaunchCoordinator(
            request, lambda built: self.create_pod(built, task_id, labels)
        )

    def create_pod(
        self, request: DeploymentRequest, task_id: str, labels: dict[str, str]
    ) -> dict[str, Any]:
        """Create the task pod for a request whose resource is an image."""
        logger.info(f"Launching task '{task_id}' with image: {request.resource}")
        return self.cluster.create(
            ResourceKind.POD,
            {
                "apiVersion": "v1",
                "kind": "Pod",
                "metadata": {"name": task_id, "labels": dict(labels)},
                "spec": {
                    "containers": [self.containers.create(request, task_id)],
                    "restartPolicy": "Never",
                },
            },
        )

    def status(self, task_id: str) -> TaskStatus:
        """Report a task's state from its pod, or from its build before that."""
        build = latest_build(
            [
                BuildRecord.from_manifest(m)
                for m in self.cluster.list(ResourceKind.BUILD, task_selector(task_id))
            ]
        )
        build_phase = build.phase if build else None

        pod = self.cluster.get(ResourceKind.POD, task_id)
        if pod is not None:
            phase = (pod.get("status") or {}).get("phase")
            state = _POD_PHASE_STATES.get(phase, TaskState.UNKNOWN)
        elif build_phase is None:
            state = TaskState.UNKNOWN
        elif not build_phase.is_terminal:
            state = TaskState.BUILDING
        elif build_phase is BuildPhase.COMPLETE:
            state = TaskState.LAUNCHING
        else:
            state = TaskState.FAILED
        return TaskStatus(task_id=task_id, state=state, build_phase=build_phase)

    def cleanup(self, task_id: str) -> None:
        """Delete a task's pod and the builds it started.

        The build pipeline is kept so later launches can reuse its image.
        """
        logger.info(f"Cleaning up task '{task_id}'")
        self.registry.close(task_id)
        self._untrack(task_id)
        self._delete_by_label(ResourceKind.BUILD, task_selector(task_id))
        self.cluster.delete(ResourceKind.POD, task_id)
