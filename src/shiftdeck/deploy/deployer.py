"""Application deployer: deploy, undeploy and status of long-running apps.

Artifacts are built into images on the cluster before they run. A deploy
call returns as soon as every object is ensured and the build is submitted.
The rollout happens later: the workload's automatic image change trigger
fires when the image lands, and while the deployer runs the watch thread
also rolls out explicitly once the build completes.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.artifacts import ArtifactResolver
from shiftdeck.deploy.build_definitions import BuildDefinitionBuilder
from shiftdeck.deploy.cluster import ClusterClient, OpenShiftClusterClient, ResourceKind
from shiftdeck.deploy.fingerprint import ContentFingerprinter
from shiftdeck.deploy.oracle import BuildExistenceOracle
from shiftdeck.deploy.pipeline import ObjectFactoryPipeline, ObjectFactoryStep
from shiftdeck.deploy.resources import (
    ContainerFactory,
    DeploymentConfigStep,
    ImageStreamStep,
    RouteStep,
    ServiceStep,
    wants_node_port,
    wants_route,
)
from shiftdeck.deploy.rollout import BuildCompletionCoordinator, RolloutCoordinator
from shiftdeck.deploy.strategies import StrategySelector, artifact_inspector
from shiftdeck.deploy.submitter import BuildSubmitter
from shiftdeck.deploy.watcher import (
    BuildWatcher,
    BuildWatchStep,
    WatchingBuildStep,
    WatchRegistry,
)
from shiftdeck.lib.errors import InvalidRequestError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BinaryInputSourceImage, BuildPhase, BuildRecord
from shiftdeck.models.request import DeploymentRequest, DockerResource
from shiftdeck.models.settings import DeployerSettings
from shiftdeck.models.status import AppStatus, DeploymentState, InstanceStatus

logger = get_logger(__name__)

# Poll interval while waiting for a scaled-down workload's pods to go away
_SCALE_DOWN_POLL_INTERVAL = 1.0


def latest_build(builds: list[BuildRecord]) -> BuildRecord | None:
    """Most recent build by its run number (``{build_config}-{n}``)."""

    def _number(build: BuildRecord) -> int:
        suffix = build.name.rsplit("-", 1)[-1]
        return int(suffix) if suffix.isdigit() else -1

    if not builds:
        return None
    return max(enumerate(builds), key=lambda item: (_number(item[1]), item[0]))[1]


def pod_ready(pod: dict[str, Any]) -> bool:
    statuses = (pod.get("status") or {}).get("containerStatuses") or []
    return bool(statuses) and all(s.get("ready") for s in statuses)


class BuildingDeployer:
    """Shared machinery for deployers that build artifacts into images.

    Args:
        settings: Deployer settings
        cluster: Cluster client
        resolver: Artifact resolver (defaults to one using the Maven settings)
        fingerprinter: Content fingerprinter
    """

    def __init__(
        self,
        settings: DeployerSettings,
        cluster: ClusterClient,
        resolver: ArtifactResolver | None = None,
        fingerprinter: ContentFingerprinter | None = None,
    ) -> None:
        self.settings = settings
        self.cluster = cluster
        self.resolver = resolver or ArtifactResolver(settings.maven)
        self.fingerprinter = fingerprinter or ContentFingerprinter()
        self.oracle = BuildExistenceOracle(cluster, settings)
        self.selector = StrategySelector(settings)
        self.definitions = BuildDefinitionBuilder(settings)
        self.containers = ContainerFactory(settings)
        self.watcher = BuildWatcher(cluster)
        self.registry = WatchRegistry()
        self._coordinators: dict[str, BuildCompletionCoordinator] = {}
        self._coordinators_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: DeployerSettings, **kwargs: Any) -> Any:
        """Create a deployer connected to the cluster of the current kubeconfig.

        Raises:
            ClusterNotAvailableError: If no cluster configuration can be loaded
        """
        return cls(settings, OpenShiftClusterClient(settings.namespace), **kwargs)

    def _build_pipeline_steps(
        self,
        request: DeploymentRequest,
        app_id: str,
        labels: dict[str, str],
        fingerprint: str,
        coordinator_factory: Any,
        registry_key: str | None = None,
    ) -> tuple[DeploymentRequest, list[ObjectFactoryStep], BuildCompletionCoordinator]:
        """Select a strategy and create the image stream and watched build steps.

        Args:
            coordinator_factory: Called with the final request to create the
                completion callback
            registry_key: Key for the watch registry (defaults to ``app_id``)

        Returns:
            The request to continue with (marked for binary builds), the steps
            and the completion coordinator
        """
        logger.info(f"Building application '{app_id}' with resource: {request.resource}")
        resource = request.resource
        if isinstance(resource, DockerResource):
            raise TypeError(f"Only artifacts are built into images, got {resource}")
        strategy = self.selector.select(
            request, artifact_inspector(self.resolver, resource)
        )
        if isinstance(strategy, BinaryInputSourceImage):
            request = request.with_deployment_properties({props.S2I_BUILD: "true"})

        coordinator: BuildCompletionCoordinator = coordinator_factory(request)
        submitter = BuildSubmitter(
            self.cluster, self.definitions, self.resolver, strategy, labels, fingerprint
        )
        steps: list[ObjectFactoryStep] = [
            ImageStreamStep(self.cluster, labels),
            WatchingBuildStep(
                submitter,
                self.watcher,
                self.registry,
                props.app_selector(app_id),
                coordinator,
                registry_key,
                on_finished=coordinator.watch_finished,
            ),
        ]
        return request, steps, coordinator

    def _existing_build_watch_step(
        self,
        app_id: str,
        build: BuildRecord,
        coordinator: BuildCompletionCoordinator,
        registry_key: str | None = None,
    ) -> BuildWatchStep:
        """Step watching a reusable build that is still in progress.

        The watch opens when the step is activated, after every object the
        completion callback acts on has been ensured.
        """
        logger.info(f"Waiting for in-progress build '{build.name}' of '{app_id}'")
        return BuildWatchStep(
            self.watcher,
            self.registry,
            props.app_selector(app_id),
            coordinator,
            registry_key=registry_key,
            build_name=build.name,
            on_finished=coordinator.watch_finished,
        )

    def _reused_build_request(
        self, request: DeploymentRequest, app_id: str
    ) -> DeploymentRequest:
        """Carry the binary-build marker over when reusing a binary build."""
        build_config = self.cluster.get(ResourceKind.BUILD_CONFIG, app_id)
        source_type = ((build_config or {}).get("spec") or {}).get("source") or {}
        if source_type.get("type") == "Binary":
            return request.with_deployment_properties({props.S2I_BUILD: "true"})
        return request

    def _track(self, app_id: str, coordinator: BuildCompletionCoordinator) -> None:
        with self._coordinators_lock:
            self._coordinators[app_id] = coordinator

    def _untrack(self, app_id: str) -> None:
        with self._coordinators_lock:
            self._coordinators.pop(app_id, None)

    def coordinator(self, app_id: str) -> BuildCompletionCoordinator | None:
        """Completion coordinator of the latest deploy/launch for ``app_id``."""
        with self._coordinators_lock:
            return self._coordinators.get(app_id)

    def wait(self, app_id: str, timeout: float | None = None) -> bool:
        """Wait until the outcome of the build for ``app_id`` is known.

        A failed build or a watch that ended early also ends the wait; the
        coordinator's ``error`` tells these apart from a completed build.

        Returns:
            True when nothing is pending or the coordinator finished in time
        """
        coordinator = self.coordinator(app_id)
        if coordinator is None:
            return True
        return coordinator.wait(timeout)

    def _delete_by_label(self, kind: ResourceKind, selector: str) -> int:
        deleted = 0
        for manifest in self.cluster.list(kind, selector):
            if self.cluster.delete(kind, manifest["metadata"]["name"]):
                deleted += 1
        return deleted

    def shutdown(self) -> None:
        """Close every active build watch."""
        self.registry.close_all()


class AppDeployer(BuildingDeployer):
    """Deploys applications as DeploymentConfigs on OpenShift.

    Pre-built images are deployed directly. Artifacts go through the build
    pipeline: the image is built on the cluster (or an earlier build of the
    same artifact is reused) and the workloads roll out once it completes.
    """

    def __init__(
        self,
        settings: DeployerSettings,
        cluster: ClusterClient,
        resolver: ArtifactResolver | None = None,
        fingerprinter: ContentFingerprinter | None = None,
    ) -> None:
        """Create a deployer.

        Args:
            settings: Deployer settings
            cluster: Cluster client
            resolver: Artifact resolver
            fingerprinter: Content fingerprinter
        """
        super().__init__(settings, cluster, resolver, fingerprinter)
        self._executor = ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="shiftdeck-scale-down"
        )

    def validate(self, request: DeploymentRequest) -> str:
        """Check a request for definition-time errors.

        Returns:
            The application id

        Raises:
            InvalidRequestError: If the id is too long, a route is combined
                with a node port, or the label list is malformed
        """
        app_id = props.create_app_id(request)
        if wants_route(request, self.settings) and wants_node_port(request):
            raise InvalidRequestError(
                props.CREATE_NODE_PORT,
                "A route and a node port cannot both be requested",
            )
        props.identity_labels(app_id, request)
        return app_id

    def deploy(self, request: DeploymentRequest) -> str:
        """Deploy an application.

        Returns as soon as the cluster objects exist and any build has been
        submitted; build failures surface through ``status``.

        Args:
            request: Deployment request

        Returns:
            The application id

        Raises:
            InvalidRequestError: For definition-time errors or an app that is
                already deployed
            ArtifactReadError: If the artifact cannot be read
            DeploymentError: If the cluster rejects an object
        """
        app_id = self.validate(request)
        if self.cluster.list(ResourceKind.DEPLOYMENT_CONFIG, props.app_selector(app_id)):
            raise InvalidRequestError("name", f"App '{app_id}' is already deployed")

        if isinstance(request.resource, DockerResource):
            self._deploy_image(request, app_id)
        else:
            self._deploy_artifact(request, app_id)
        return app_id

    def _exposure_steps(
        self, request: DeploymentRequest, labels: dict[str, str]
    ) -> list[ObjectFactoryStep]:
        steps: list[ObjectFactoryStep] = [ServiceStep(self.cluster, self.settings, labels)]
        if wants_route(request, self.settings):
            steps.append(RouteStep(self.cluster, self.settings, labels))
        return steps

    def _deploy_image(self, request: DeploymentRequest, app_id: str) -> None:
        labels = props.identity_labels(app_id, request)
        steps: list[ObjectFactoryStep] = [
            DeploymentConfigStep(self.cluster, self.settings, labels, self.containers)
        ]
        steps.extend(self._exposure_steps(request, labels))
        ObjectFactoryPipeline(steps).run(request, app_id)

    def _deploy_artifact(self, request: DeploymentRequest, app_id: str) -> None:
        resource = request.resource
        if isinstance(resource, DockerResource):
            raise TypeError(f"Only artifacts are built into images, got {resource}")
        fingerprint = self.fingerprinter.fingerprint(resource)
        labels = props.identity_labels(app_id, request)

        steps: list[ObjectFactoryStep] = []
        rollout_now: RolloutCoordinator | None = None
        watch_step: BuildWatchStep | None = None
        if not self.oracle.exists(request, app_id, fingerprint):
            request, steps, coordinator = self._build_pipeline_steps(
                request,
                app_id,
                labels,
                fingerprint,
                lambda req: RolloutCoordinator(self.cluster, app_id, req),
            )
            self._track(app_id, coordinator)
        else:
            request = self._reused_build_request(request, app_id)
            build = self.oracle.find_reusable(request, app_id, fingerprint)
            coordinator = RolloutCoordinator(self.cluster, app_id, request)
            if build is not None and not build.phase.is_terminal:
                self._track(app_id, coordinator)
                watch_step = self._existing_build_watch_step(app_id, build, coordinator)
            else:
                logger.info(f"Reusing existing build for '{app_id}'")
                rollout_now = coordinator

        steps.append(
            DeploymentConfigStep(
                self.cluster,
                self.settings,
                labels,
                self.containers,
                image_change_trigger=True,
                rollout=rollout_now,
            )
        )
        steps.extend(self._exposure_steps(request, labels))
        if watch_step is not None:
            steps.append(watch_step)
        ObjectFactoryPipeline(steps).run(request, app_id)

    def _scale_down(self, name: str, cancelled: threading.Event) -> None:
        self.cluster.scale(ResourceKind.DEPLOYMENT_CONFIG, name, 0)
        selector = f"{props.DEPLOYMENT_ID_LABEL}={name}"
        while not cancelled.is_set() and self.cluster.list(ResourceKind.POD, selector):
            cancelled.wait(_SCALE_DOWN_POLL_INTERVAL)

    def scale_down(self, name: str) -> bool:
        """Scale a workload to zero, waiting at most ``scale_down_timeout``.

        On timeout only the wait is abandoned; the scale-down itself may
        still complete on the cluster.

        Returns:
            True if the workload scaled down within the timeout
        """
        cancelled = threading.Event()
        future = self._executor.submit(self._scale_down, name, cancelled)
        try:
            future.result(timeout=self.settings.scale_down_timeout)
            return True
        except FutureTimeoutError:
            cancelled.set()
            future.cancel()
            logger.warning(
                f"Scale down of '{name}' did not finish within "
                f"{self.settings.scale_down_timeout}s, continuing undeploy"
            )
            return False

    def undeploy(self, app_id: str) -> None:
        """Remove an application's workloads, services, routes and pods.

        Build pipelines and builds are kept so a later deploy of the same
        artifact can reuse the image.

        Raises:
            InvalidRequestError: If nothing is deployed for ``app_id``
            DeploymentError: If the cluster rejects a deletion
        """
        selector = props.app_selector(app_id)
        deployment_configs = self.cluster.list(ResourceKind.DEPLOYMENT_CONFIG, selector)
        pods = self.cluster.list(ResourceKind.POD, selector)
        if not deployment_configs and not pods:
            raise InvalidRequestError("app_id", f"App '{app_id}' is not deployed")

        logger.info(f"Undeploying application '{app_id}'")
        self.registry.close(app_id)
        self._untrack(app_id)

        self._delete_by_label(ResourceKind.ROUTE, selector)
        self._delete_by_label(ResourceKind.SERVICE, selector)
        for deployment_config in deployment_configs:
            name = deployment_config["metadata"]["name"]
            self.scale_down(name)
            self.cluster.delete(ResourceKind.DEPLOYMENT_CONFIG, name)
        self._delete_by_label(ResourceKind.POD, selector)

        if self.settings.undeploy_delay > 0:
            time.sleep(self.settings.undeploy_delay)

    def status(self, app_id: str) -> AppStatus:
        """Report the state of an application and its pods."""
        selector = props.app_selector(app_id)
        build = latest_build(self.oracle.list_builds(app_id))
        build_phase = build.phase if build else None
        deployment_configs = self.cluster.list(ResourceKind.DEPLOYMENT_CONFIG, selector)
        pods = self.cluster.list(ResourceKind.POD, selector)

        instances = [
            InstanceStatus(
                id=pod["metadata"]["name"],
                deployment_id=(pod["metadata"].get("labels") or {}).get(
                    props.DEPLOYMENT_ID_LABEL
                ),
                phase=(pod.get("status") or {}).get("phase") or "Unknown",
                ready=pod_ready(pod),
                build_phase=build_phase,
            )
            for pod in pods
        ]

        if not deployment_configs and not pods:
            state = DeploymentState.UNKNOWN
        elif not instances:
            if build_phase is not None and not build_phase.is_terminal:
                state = DeploymentState.BUILDING
            elif build_phase is not None and build_phase is not BuildPhase.COMPLETE:
                state = DeploymentState.FAILED
            else:
                state = DeploymentState.DEPLOYING
        else:
            ready = [i for i in instances if i.ready]
            failed = [i for i in instances if i.phase == "Failed"]
            if len(ready) == len(instances):
                state = DeploymentState.DEPLOYED
            elif failed and not ready:
                state = DeploymentState.FAILED
            elif ready:
                state = DeploymentState.PARTIAL
            else:
                state = DeploymentState.DEPLOYING

        return AppStatus(
            app_id=app_id, state=state, build_phase=build_phase, instances=instances
        )

    def shutdown(self) -> None:
        """Close active build watches and stop the scale-down workers."""
        super().shutdown()
        self._executor.shutdown(wait=False, cancel_futures=True)
