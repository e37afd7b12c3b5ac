"""Tests for deployment request models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from shiftdeck.models.request import (
    DeploymentRequest,
    DockerResource,
    FileResource,
    MavenResource,
)


@pytest.fixture
def maven_resource() -> MavenResource:
    return MavenResource(group_id="org.example", artifact_id="orders", version="1.0")


class TestMavenResource:
    """Tests for MavenResource."""

    def test_filename_without_classifier(self, maven_resource: MavenResource) -> None:
        """Test the repository file name of a plain jar."""
        assert maven_resource.filename == "orders-1.0.jar"

    def test_filename_with_classifier(self) -> None:
        """Test that the classifier is part of the file name."""
        resource = MavenResource(
            group_id="org.example",
            artifact_id="orders",
            version="1.0",
            classifier="exec",
        )
        assert resource.filename == "orders-1.0-exec.jar"
        assert resource.coordinates == "org.example:orders:jar:exec:1.0"

    def test_str_uses_maven_scheme(self, maven_resource: MavenResource) -> None:
        """Test the display form of a Maven resource."""
        assert str(maven_resource) == "maven://org.example:orders:jar:1.0"

    def test_local_path_absent(self, maven_resource: MavenResource) -> None:
        """Test that unresolved resources have no local path."""
        assert maven_resource.local_path() is None


class TestDockerResource:
    """Tests for DockerResource."""

    @pytest.mark.parametrize(
        "image",
        ["docker:registry/app:1.0", "docker://registry/app:1.0", "registry/app:1.0"],
    )
    def test_prefix_is_stripped(self, image: str) -> None:
        """Test that docker: prefixes are removed."""
        assert DockerResource(image=image).image == "registry/app:1.0"


class TestDeploymentRequest:
    """Tests for DeploymentRequest."""

    def test_is_buildable(self, maven_resource: MavenResource) -> None:
        """Test that only artifacts need a build."""
        assert DeploymentRequest(name="a", resource=maven_resource).is_buildable
        assert DeploymentRequest(name="a", resource=FileResource(path="a.jar")).is_buildable
        assert not DeploymentRequest(
            name="a", resource=DockerResource(image="nginx")
        ).is_buildable

    def test_request_is_immutable(self, maven_resource: MavenResource) -> None:
        """Test that requests cannot be modified in place."""
        request = DeploymentRequest(name="a", resource=maven_resource)
        with pytest.raises(ValidationError):
            request.name = "b"  # type: ignore[misc]

    def test_with_resource_preserves_other_fields(
        self, maven_resource: MavenResource
    ) -> None:
        """Test that swapping the resource keeps everything else."""
        request = DeploymentRequest(
            name="a",
            properties={"p": "1"},
            deployment_properties={"d": "2"},
            resource=maven_resource,
            command_line_args=("--x",),
        )
        copy = request.with_resource(DockerResource(image="registry/a:abc"))
        assert copy.resource == DockerResource(image="registry/a:abc")
        assert copy.properties == {"p": "1"}
        assert copy.deployment_properties == {"d": "2"}
        assert copy.command_line_args == ("--x",)
        assert request.resource == maven_resource

    def test_with_deployment_properties_merges(
        self, maven_resource: MavenResource
    ) -> None:
        """Test that extra deployment properties are merged into a copy."""
        request = DeploymentRequest(
            name="a", deployment_properties={"d": "2"}, resource=maven_resource
        )
        copy = request.with_deployment_properties({"e": "3"})
        assert copy.deployment_properties == {"d": "2", "e": "3"}
        assert request.deployment_properties == {"d": "2"}

    def test_property_values_are_stringified(
        self, maven_resource: MavenResource
    ) -> None:
        """Test that YAML scalars become strings and None values are dropped."""
        request = DeploymentRequest(
            name="a",
            deployment_properties={"count": 3, "flag": True, "none": None},
            resource=maven_resource,
        )
        assert request.deployment_properties == {"count": "3", "flag": "true"}

    def test_empty_name_rejected(self, maven_resource: MavenResource) -> None:
        """Test that a name is required."""
        with pytest.raises(ValidationError):
            DeploymentRequest(name="", resource=maven_resource)
