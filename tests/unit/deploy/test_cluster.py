"""Tests for cluster client helpers and error mapping."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from shiftdeck.config.defaults import WATCH_TIMEOUT_SECONDS
from shiftdeck.deploy.cluster import (
    OpenShiftClusterClient,
    ResourceKind,
    api_error,
    is_retryable_status,
)
from shiftdeck.lib.errors import (
    BuildSubmissionError,
    ClusterNotAvailableError,
    DeploymentError,
)


class TestResourceKind:
    """Tests for ResourceKind."""

    def test_path_prefix(self) -> None:
        """Test API path prefixes for core and group kinds."""
        assert ResourceKind.POD.path_prefix == "/api/v1"
        assert ResourceKind.BUILD_CONFIG.path_prefix == "/apis/build.openshift.io/v1"
        assert ResourceKind.DEPLOYMENT_CONFIG.plural == "deploymentconfigs"


class TestErrorMapping:
    """Tests for api_error."""

    @pytest.mark.parametrize(
        "status,retryable",
        [(409, True), (500, True), (503, True), (400, False), (403, False), (None, False)],
    )
    def test_is_retryable_status(self, status: int | None, retryable: bool) -> None:
        """Test which statuses may succeed on resubmission."""
        assert is_retryable_status(status) is retryable

    def test_build_kinds_map_to_submission_error(self) -> None:
        """Test that build failures become BuildSubmissionError."""
        error = api_error(
            "instantiate", ResourceKind.BUILD_CONFIG, ApiException(status=409, reason="Conflict")
        )
        assert isinstance(error, BuildSubmissionError)
        assert error.retryable is True
        assert error.status == 409
        assert "BuildConfig" in error.message

    def test_bad_request_not_retryable(self) -> None:
        """Test that rejected requests are not retryable."""
        error = api_error(
            "create", ResourceKind.BUILD, ApiException(status=422, reason="Invalid")
        )
        assert isinstance(error, BuildSubmissionError)
        assert error.retryable is False

    def test_other_kinds_map_to_deployment_error(self) -> None:
        """Test that non-build failures are plain deployment errors."""
        error = api_error(
            "create", ResourceKind.SERVICE, ApiException(status=500, reason="Boom")
        )
        assert type(error) is DeploymentError
        assert error.operation == "create"


class TestOpenShiftClusterClient:
    """Tests for client construction and special endpoints."""

    def test_no_configuration_available(self) -> None:
        """Test that missing cluster configuration is reported."""
        with (
            patch(
                "shiftdeck.deploy.cluster.config.load_incluster_config",
                side_effect=ConfigException("not in cluster"),
            ),
            patch(
                "shiftdeck.deploy.cluster.config.load_kube_config",
                side_effect=ConfigException("no kubeconfig"),
            ),
        ):
            with pytest.raises(ClusterNotAvailableError) as exc_info:
                OpenShiftClusterClient("ns")
        assert "no kubeconfig" in exc_info.value.message

    def test_instantiate_binary_build_posts_bytes(self) -> None:
        """Test that binary builds stream the artifact with asFile."""
        api_client = MagicMock()
        api_client.call_api.return_value = {"metadata": {"name": "app-1"}}
        client = OpenShiftClusterClient("ns", api_client=api_client)

        result = client.instantiate_binary_build("app", "app.jar", b"bytes")

        assert result == {"metadata": {"name": "app-1"}}
        args, kwargs = api_client.call_api.call_args
        assert args == (
            "/apis/build.openshift.io/v1/namespaces/ns/buildconfigs/app/instantiatebinary",
            "POST",
        )
        assert kwargs["body"] == b"bytes"
        assert kwargs["query_params"] == [("asFile", "app.jar")]
        assert kwargs["header_params"]["Content-Type"] == "application/octet-stream"

    def test_instantiate_build_rejected(self) -> None:
        """Test that a rejected build request raises BuildSubmissionError."""
        api_client = MagicMock()
        api_client.call_api.side_effect = ApiException(status=503, reason="Unavailable")
        client = OpenShiftClusterClient("ns", api_client=api_client)

        with pytest.raises(BuildSubmissionError) as exc_info:
            client.instantiate_build("app", {"kind": "BuildRequest"})
        assert exc_info.value.retryable is True

    def test_deploy_latest_request(self) -> None:
        """Test that a rollout posts a DeploymentRequest for the latest version."""
        api_client = MagicMock()
        api_client.call_api.return_value = {}
        client = OpenShiftClusterClient("ns", api_client=api_client)

        client.deploy_latest("app-0")

        args, kwargs = api_client.call_api.call_args
        assert args[0] == (
            "/apis/apps.openshift.io/v1/namespaces/ns/deploymentconfigs/app-0/instantiate"
        )
        assert kwargs["body"]["kind"] == "DeploymentRequest"
        assert kwargs["body"]["latest"] is True


def _build_event(version: str) -> dict[str, Any]:
    return {
        "type": "MODIFIED",
        "raw_object": {"metadata": {"name": "app-1", "resourceVersion": version}},
    }


class TestBuildWatch:
    """Tests for watches opened through the dynamic client."""

    def test_requests_are_bounded_and_resume(self) -> None:
        """Test that each watch request times out and the next resumes."""
        resource = MagicMock()
        resource.watch.side_effect = [
            iter([_build_event("10")]),
            iter([_build_event("11")]),
        ]
        client = OpenShiftClusterClient("ns", api_client=MagicMock())
        with patch.object(OpenShiftClusterClient, "_resource", return_value=resource):
            cluster_watch = client.watch(ResourceKind.BUILD, "shiftdeck-app-id=app")

        events = cluster_watch.events()
        assert next(events)[1]["metadata"]["resourceVersion"] == "10"
        assert next(events)[1]["metadata"]["resourceVersion"] == "11"
        cluster_watch.stop()
        assert list(events) == []

        first, second = resource.watch.call_args_list
        assert first.kwargs["timeout"] == WATCH_TIMEOUT_SECONDS
        assert first.kwargs["resource_version"] is None
        assert first.kwargs["namespace"] == "ns"
        assert second.kwargs["resource_version"] == "10"
        assert second.kwargs["label_selector"] == "shiftdeck-app-id=app"

    def test_stopped_watch_opens_no_request(self) -> None:
        """Test that a watch stopped before iteration never calls the server."""
        resource = MagicMock()
        client = OpenShiftClusterClient("ns", api_client=MagicMock())
        with patch.object(OpenShiftClusterClient, "_resource", return_value=resource):
            cluster_watch = client.watch(ResourceKind.BUILD, "shiftdeck-app-id=app")

        cluster_watch.stop()
        assert list(cluster_watch.events()) == []
        resource.watch.assert_not_called()
