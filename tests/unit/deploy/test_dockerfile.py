"""Tests for bundled Dockerfile templates."""

from __future__ import annotations

import pytest

from shiftdeck.deploy.dockerfile import (
    DEFAULT_BASE_IMAGE,
    generate_dockerfile,
    is_bundled_dockerfile,
)


class TestGenerateDockerfile:
    """Tests for generate_dockerfile."""

    def test_artifactory_template(self) -> None:
        """Test that the Artifactory template downloads the resource URL."""
        content = generate_dockerfile("Dockerfile.artifactory", port=9090)
        assert f"FROM {DEFAULT_BASE_IMAGE}" in content
        assert "${app_resource_url}" in content
        assert "EXPOSE 9090" in content

    def test_nexus_template(self) -> None:
        """Test that the Nexus template uses the Maven coordinates."""
        content = generate_dockerfile("Dockerfile.nexus")
        assert "${app_groupId}" in content
        assert "${app_resource_host}" in content
        assert "EXPOSE 8080" in content

    def test_environment_and_base_image(self) -> None:
        """Test that environment and base image are rendered."""
        content = generate_dockerfile(
            "Dockerfile.artifactory",
            base_image="eclipse-temurin:17",
            environment={"JAVA_OPTS": "-Xmx256m"},
        )
        assert "FROM eclipse-temurin:17" in content
        assert 'ENV JAVA_OPTS="-Xmx256m"' in content

    def test_unknown_template(self) -> None:
        """Test that unknown template names raise KeyError."""
        with pytest.raises(KeyError):
            generate_dockerfile("Dockerfile.unknown")

    @pytest.mark.parametrize(
        "name,bundled",
        [
            ("Dockerfile.artifactory", True),
            (" Dockerfile.nexus ", True),
            ("FROM busybox", False),
            ("Dockerfile", False),
        ],
    )
    def test_is_bundled_dockerfile(self, name: str, bundled: bool) -> None:
        """Test bundled template detection."""
        assert is_bundled_dockerfile(name) is bundled
