"""Tests for artifact fingerprints."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from shiftdeck.deploy.fingerprint import ContentFingerprinter, fingerprint_bytes
from shiftdeck.lib.errors import ArtifactReadError
from shiftdeck.models.request import FileResource, MavenResource


class TestContentFingerprinter:
    """Tests for ContentFingerprinter."""

    def test_identical_content_identical_fingerprint(self, temp_dir: Path) -> None:
        """Test that two files with the same bytes share a fingerprint."""
        first = temp_dir / "a.jar"
        second = temp_dir / "b.jar"
        first.write_bytes(b"same bytes")
        second.write_bytes(b"same bytes")
        fingerprinter = ContentFingerprinter()
        assert fingerprinter.fingerprint(
            FileResource(path=str(first))
        ) == fingerprinter.fingerprint(FileResource(path=str(second)))

    def test_different_content_different_fingerprint(self, temp_dir: Path) -> None:
        """Test that changed content changes the fingerprint."""
        path = temp_dir / "a.jar"
        fingerprinter = ContentFingerprinter()
        path.write_bytes(b"v1")
        before = fingerprinter.fingerprint(FileResource(path=str(path)))
        path.write_bytes(b"v2")
        assert fingerprinter.fingerprint(FileResource(path=str(path))) != before

    def test_matches_sha256_of_bytes(self, artifact_file: Path) -> None:
        """Test that file fingerprints equal the fingerprint of their bytes."""
        expected = fingerprint_bytes(artifact_file.read_bytes())
        assert ContentFingerprinter().fingerprint(
            FileResource(path=str(artifact_file))
        ) == expected
        assert expected == "sha256:" + hashlib.sha256(b"application bytes").hexdigest()

    def test_unreadable_artifact_raises(self, temp_dir: Path) -> None:
        """Test that a missing artifact is fatal, not treated as no build."""
        with pytest.raises(ArtifactReadError):
            ContentFingerprinter().fingerprint(
                FileResource(path=str(temp_dir / "missing.jar"))
            )

    def test_unresolved_maven_artifact_uses_coordinates(self) -> None:
        """Test that Maven artifacts without a file hash their coordinates."""
        resource = MavenResource(group_id="org.example", artifact_id="a", version="1")
        assert ContentFingerprinter().fingerprint(resource) == fingerprint_bytes(
            b"org.example:a:jar:1"
        )
