"""Tests for the build existence oracle."""

from __future__ import annotations

from typing import Any

import pytest

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.cluster import ResourceKind
from shiftdeck.deploy.oracle import BuildExistenceOracle
from shiftdeck.models.request import DeploymentRequest, FileResource
from shiftdeck.models.settings import DeployerSettings

LABELS = {props.APP_ID_LABEL: "app"}


def _request(**deployment_properties: str) -> DeploymentRequest:
    return DeploymentRequest(
        name="app",
        deployment_properties=deployment_properties,
        resource=FileResource(path="app.jar"),
    )


@pytest.fixture
def oracle(cluster: Any, settings: DeployerSettings) -> BuildExistenceOracle:
    return BuildExistenceOracle(cluster, settings)


class TestExists:
    """Tests for BuildExistenceOracle.exists."""

    def test_matching_fingerprint_is_reused(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that a completed build with the same fingerprint is reused."""
        cluster.add(
            ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "abc123")
        )
        assert oracle.exists(_request(), "app", "abc123") is True

    def test_different_fingerprint_rebuilds(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that a changed artifact is rebuilt."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "old"))
        assert oracle.exists(_request(), "app", "new") is False

    def test_no_builds(self, oracle: BuildExistenceOracle) -> None:
        """Test that an app without builds needs a build."""
        assert oracle.exists(_request(), "app", "abc123") is False

    @pytest.mark.parametrize("phase", ["Failed", "Error", "Cancelled"])
    def test_failed_builds_are_not_reused(
        self,
        cluster: Any,
        oracle: BuildExistenceOracle,
        make_build: Any,
        phase: str,
    ) -> None:
        """Test that builds that produced no image never count."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", phase, LABELS, "abc123"))
        assert oracle.exists(_request(), "app", "abc123") is False

    def test_running_build_counts(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that an in-progress build of the same artifact is reused."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Running", LABELS, "abc123"))
        assert oracle.exists(_request(), "app", "abc123") is True

    def test_builds_of_other_apps_ignored(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that only builds labeled with the app id are considered."""
        cluster.add(
            ResourceKind.BUILD,
            make_build("other-1", "Complete", {props.APP_ID_LABEL: "other"}, "abc123"),
        )
        assert oracle.exists(_request(), "app", "abc123") is False

    def test_force_property_rebuilds(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that forcing a build ignores a matching build."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "abc123"))
        request = _request(**{props.BUILD_FORCE: "true"})
        assert oracle.exists(request, "app", "abc123") is False
        assert oracle.find_reusable(request, "app", "abc123") is None

    def test_forbid_property_never_rebuilds(
        self, cluster: Any, oracle: BuildExistenceOracle, make_build: Any
    ) -> None:
        """Test that forbidding a build reuses the latest usable build."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "old"))
        request = _request(**{props.BUILD_FORCE: "false"})
        assert oracle.exists(request, "app", "new") is True
        build = oracle.find_reusable(request, "app", "new")
        assert build is not None
        assert build.name == "app-1"

    def test_settings_force_build(
        self, cluster: Any, make_build: Any
    ) -> None:
        """Test the deployer-wide force flag."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "abc123"))
        oracle = BuildExistenceOracle(cluster, DeployerSettings(force_build=True))
        assert oracle.exists(_request(), "app", "abc123") is False

    def test_property_overrides_settings(
        self, cluster: Any, make_build: Any
    ) -> None:
        """Test that an explicit property wins over the settings flag."""
        cluster.add(ResourceKind.BUILD, make_build("app-1", "Complete", LABELS, "abc123"))
        oracle = BuildExistenceOracle(cluster, DeployerSettings(force_build=True))
        assert oracle.exists(_request(**{props.BUILD_FORCE: "false"}), "app", "abc123")
