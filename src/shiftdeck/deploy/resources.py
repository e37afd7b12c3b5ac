"""Declarative workload, network and image objects.

Each class is a pipeline step whose ``ensure`` creates or updates cluster
objects. Indexed applications get one DeploymentConfig and Service per
index, each labeled with its own deployment id.
"""

from __future__ import annotations

import re
from typing import Any

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.cluster import ClusterClient, ResourceKind
from shiftdeck.deploy.pipeline import ObjectFactoryStep
from shiftdeck.deploy.rollout import RolloutCoordinator
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.request import DeploymentRequest, DockerResource
from shiftdeck.models.settings import DeployerSettings

logger = get_logger(__name__)


def override_image(image: str, registry: str | None, project: str | None) -> str:
    """Rewrite the registry and project parts of an image reference.

    Example:
        >>> override_image("docker.io/library/app:1.0", "registry.local", "team")
        'registry.local/team/app:1.0'
    """
    if not registry or not registry.strip():
        return image
    if "/" in image:
        image = re.sub(r"^[^/]*/", f"{registry}/", image, count=1)
    else:
        image = f"{registry}/{image}"
    if project and image.count("/") >= 2:
        image = re.sub(r"/[^/]*/", f"/{project}/", image, count=1)
    logger.debug(f"Overriding image registry with '{registry}' and project '{project}'")
    return image


def instance_labels(labels: dict[str, str], instance_id: str) -> dict[str, str]:
    """Copy of ``labels`` with the deployment id replaced for one instance."""
    return {**labels, props.DEPLOYMENT_ID_LABEL: instance_id}


class ContainerFactory:
    """Builds container specs for workloads and task pods.

    Args:
        settings: Deployer settings
    """

    def __init__(self, settings: DeployerSettings) -> None:
        self._settings = settings

    def image_for(self, request: DeploymentRequest, app_id: str) -> str:
        """Container image: the pre-built reference or the app's image stream."""
        if isinstance(request.resource, DockerResource):
            return override_image(
                request.resource.image,
                self._settings.docker_registry_override,
                self._settings.image_project_name,
            )
        return app_id

    def create(
        self,
        request: DeploymentRequest,
        app_id: str,
        instance: props.WorkloadInstance | None = None,
    ) -> dict[str, Any]:
        """Container spec for an application or one of its instances."""
        name = instance.id if instance else app_id
        env = [
            {"name": key, "value": value}
            for key, value in (instance.env if instance else {}).items()
        ]
        container: dict[str, Any] = {
            "name": name,
            "image": self.image_for(request, app_id),
            "env": env,
            "ports": [{"containerPort": props.container_port(request, self._settings)}],
        }
        if request.command_line_args:
            container["args"] = list(request.command_line_args)
        if props.is_binary_build(request):
            logger.debug(
                "Binary build detected, setting the container command "
                "to pass command line args"
            )
            container["command"] = [self._settings.container_command]
        return container


class ImageStreamStep(ObjectFactoryStep):
    """Image stream receiving the application's built images (get-or-create)."""

    name = "image stream"

    def __init__(self, cluster: ClusterClient, labels: dict[str, str]) -> None:
        self._cluster = cluster
        self._labels = labels

    def ensure(self, request: DeploymentRequest, app_id: str) -> dict[str, Any]:
        existing = self._cluster.get(ResourceKind.IMAGE_STREAM, app_id)
        if existing is not None:
            return existing
        return self._cluster.create(
            ResourceKind.IMAGE_STREAM,
            {
                "apiVersion": ResourceKind.IMAGE_STREAM.api_version,
                "kind": "ImageStream",
                "metadata": {"name": app_id, "labels": dict(self._labels)},
            },
        )


class DeploymentConfigStep(ObjectFactoryStep):
    """One DeploymentConfig per workload instance.

    Built applications are created with a non-automatic ImageChange trigger
    on ``{app_id}:{tag}``. Activation adds a second, automatic trigger on
    the same tag, so a build landing after the deploying process exits
    still rolls the workloads out. When ``rollout`` is given, ``activate``
    performs that rollout right away; this is used when an existing build is
    reused and no build completion will be observed.

    Args:
        cluster: Cluster client
        settings: Deployer settings
        labels: Identity labels of the application
        containers: Container spec factory
        image_change_trigger: Add the ImageChange trigger for built images
        rollout: Coordinator to roll out on activation
    """

    name = "deployment config"

    def __init__(
        self,
        cluster: ClusterClient,
        settings: DeployerSettings,
        labels: dict[str, str],
        containers: ContainerFactory,
        image_change_trigger: bool = False,
        rollout: RolloutCoordinator | None = None,
    ) -> None:
        self._cluster = cluster
        self._settings = settings
        self._labels = labels
        self._containers = containers
        self._image_change_trigger = image_change_trigger
        self._rollout = rollout

    def build(
        self,
        request: DeploymentRequest,
        app_id: str,
        instance: props.WorkloadInstance,
    ) -> dict[str, Any]:
        """DeploymentConfig manifest for one instance."""
        labels = instance_labels(self._labels, instance.id)
        indexed = props.is_indexed(request)
        replicas = 1 if indexed else props.instance_count(request)

        triggers: list[dict[str, Any]] = [{"type": "ConfigChange"}]
        if self._image_change_trigger:
            triggers.append(self.image_change(request, app_id, instance, automatic=False))

        pod_spec: dict[str, Any] = {
            "containers": [self._containers.create(request, app_id, instance)],
            "restartPolicy": "Always",
        }
        service_account = props.deployment_properties(request).get(
            props.DEPLOYMENT_SERVICE_ACCOUNT
        )
        if service_account:
            pod_spec["serviceAccountName"] = service_account

        return {
            "apiVersion": ResourceKind.DEPLOYMENT_CONFIG.api_version,
            "kind": "DeploymentConfig",
            "metadata": {"name": instance.id, "labels": labels},
            "spec": {
                "replicas": replicas,
                "selector": labels,
                "strategy": {"type": "Rolling"},
                "triggers": triggers,
                "template": {"metadata": {"labels": labels}, "spec": pod_spec},
            },
        }

    def image_change(
        self,
        request: DeploymentRequest,
        app_id: str,
        instance: props.WorkloadInstance,
        automatic: bool,
    ) -> dict[str, Any]:
        """ImageChange trigger on the application's image stream tag."""
        return {
            "type": "ImageChange",
            "imageChangeParams": {
                "automatic": automatic,
                "containerNames": [instance.id],
                "from": {
                    "kind": "ImageStreamTag",
                    "namespace": props.image_namespace(request, self._settings),
                    "name": f"{app_id}:{props.image_tag(request, self._settings)}",
                },
            },
        }

    def ensure(self, request: DeploymentRequest, app_id: str) -> list[dict[str, Any]]:
        return [
            self._cluster.create_or_replace(
                ResourceKind.DEPLOYMENT_CONFIG, self.build(request, app_id, instance)
            )
            for instance in props.workload_instances(app_id, request)
        ]

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        if self._image_change_trigger:
            for instance in props.workload_instances(app_id, request):
                manifest = self.build(request, app_id, instance)
                manifest["spec"]["triggers"].append(
                    self.image_change(request, app_id, instance, automatic=True)
                )
                self._cluster.create_or_replace(ResourceKind.DEPLOYMENT_CONFIG, manifest)
        if self._rollout is not None:
            self._rollout.rollout()


class ServiceStep(ObjectFactoryStep):
    """Service per workload instance, optionally with a node port."""

    name = "service"

    def __init__(
        self, cluster: ClusterClient, settings: DeployerSettings, labels: dict[str, str]
    ) -> None:
        self._cluster = cluster
        self._settings = settings
        self._labels = labels

    def build(
        self, request: DeploymentRequest, app_id: str, instance_id: str
    ) -> dict[str, Any]:
        deploy_props = props.deployment_properties(request)
        port = props.container_port(request, self._settings)
        labels = instance_labels(self._labels, instance_id)
        node_port = deploy_props.get(props.CREATE_NODE_PORT, "").strip()

        service_port: dict[str, Any] = {"port": port, "targetPort": port}
        spec: dict[str, Any] = {"ports": [service_port], "selector": labels}
        if node_port:
            spec["type"] = "NodePort"
            if node_port.isdigit():
                service_port["nodePort"] = int(node_port)

        if props.is_indexed(request):
            name = instance_id
        else:
            name = deploy_props.get(props.DEPLOYMENT_SERVICE_NAME, instance_id)
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "labels": labels},
            "spec": spec,
        }

    def ensure(self, request: DeploymentRequest, app_id: str) -> list[dict[str, Any]]:
        services = []
        for instance_id in props.workload_ids(app_id, request):
            manifest = self.build(request, app_id, instance_id)
            # Services cannot be replaced in place; recreate instead
            if self._cluster.get(ResourceKind.SERVICE, manifest["metadata"]["name"]):
                self._cluster.delete(ResourceKind.SERVICE, manifest["metadata"]["name"])
            services.append(self._cluster.create(ResourceKind.SERVICE, manifest))
        return services


class RouteStep(ObjectFactoryStep):
    """Route exposing the application's service outside the cluster."""

    name = "route"

    def __init__(
        self, cluster: ClusterClient, settings: DeployerSettings, labels: dict[str, str]
    ) -> None:
        self._cluster = cluster
        self._settings = settings
        self._labels = labels

    def host(self, request: DeploymentRequest, service_name: str) -> str:
        """Route host: the hostname property, or ``{id}-{namespace}.{subdomain}``."""
        return props.deployment_properties(request).get(
            props.DEPLOYMENT_ROUTE_HOSTNAME,
            f"{service_name}-{self._cluster.namespace}."
            f"{self._settings.default_routing_subdomain}",
        )

    def build(self, request: DeploymentRequest, app_id: str) -> dict[str, Any]:
        service_name = props.deployment_properties(request).get(
            props.DEPLOYMENT_SERVICE_NAME, app_id
        )
        return {
            "apiVersion": ResourceKind.ROUTE.api_version,
            "kind": "Route",
            "metadata": {"name": service_name, "labels": dict(self._labels)},
            "spec": {
                "host": self.host(request, service_name),
                "to": {"kind": "Service", "name": service_name},
                "port": {
                    "targetPort": props.container_port(request, self._settings)
                },
            },
        }

    def ensure(self, request: DeploymentRequest, app_id: str) -> dict[str, Any]:
        return self._cluster.create_or_replace(
            ResourceKind.ROUTE, self.build(request, app_id)
        )


def wants_route(request: DeploymentRequest, settings: DeployerSettings) -> bool:
    """Whether a route should be created for the request."""
    return props.get_bool(
        props.deployment_properties(request), props.CREATE_ROUTE, settings.create_route
    )


def wants_node_port(request: DeploymentRequest) -> bool:
    value = props.deployment_properties(request).get(props.CREATE_NODE_PORT)
    return bool(value and value.strip())
