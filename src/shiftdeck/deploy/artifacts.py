"""Artifact resolver: raw bytes, embedded files and SCM metadata.

Application artifacts are zip archives (jars). Reading the artifact itself
is fatal on failure; extracting metadata from it is not, and callers treat a
missing result as "not available".
"""

from __future__ import annotations

import zipfile
import xml.etree.ElementTree as ET
from pathlib import Path

from shiftdeck.config.defaults import DEFAULT_GIT_REF
from shiftdeck.lib.errors import ArtifactReadError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import GitReference
from shiftdeck.models.request import FileResource, MavenResource
from shiftdeck.models.settings import MavenSettings

logger = get_logger(__name__)

_POM_NAMESPACE = "{http://maven.apache.org/POM/4.0.0}"


class ArtifactResolver:
    """Reads application artifacts from the local file system.

    Args:
        maven: Maven settings, used to locate POM files in the local repository
    """

    def __init__(self, maven: MavenSettings | None = None) -> None:
        self._maven = maven or MavenSettings()

    def _artifact_path(self, resource: MavenResource | FileResource) -> Path:
        path = resource.local_path()
        if path is None and isinstance(resource, MavenResource):
            path = self._repository_dir(resource) / resource.filename
        if path is None:
            raise ArtifactReadError(str(resource))
        return path

    def _repository_dir(self, resource: MavenResource) -> Path:
        root = Path(self._maven.local_repository).expanduser()
        return (
            root.joinpath(*resource.group_id.split("."))
            / resource.artifact_id
            / resource.version
        )

    def read_bytes(self, resource: MavenResource | FileResource) -> bytes:
        """Return the artifact contents.

        Raises:
            ArtifactReadError: If the artifact cannot be read
        """
        path = self._artifact_path(resource)
        try:
            return path.read_bytes()
        except OSError as e:
            raise ArtifactReadError(str(resource), e) from e

    def extract_file(
        self, resource: MavenResource | FileResource, entry: str
    ) -> bytes | None:
        """Extract one file from the artifact archive.

        Args:
            resource: Zip/jar artifact
            entry: Path of the file inside the archive

        Returns:
            File contents, or None if the entry is absent or the archive
            cannot be read
        """
        name = entry.lstrip("/")
        try:
            with zipfile.ZipFile(self._artifact_path(resource)) as archive:
                return archive.read(name)
        except KeyError:
            return None
        except (OSError, zipfile.BadZipFile, ArtifactReadError) as e:
            logger.warning(f"Could not extract '{name}' from {resource}: {e}")
            return None

    def contains_file(self, resource: MavenResource | FileResource, entry: str) -> bool:
        return self.extract_file(resource, entry) is not None

    def _read_pom(self, resource: MavenResource) -> bytes | None:
        pom_file = (
            self._repository_dir(resource)
            / f"{resource.artifact_id}-{resource.version}.pom"
        )
        if pom_file.is_file():
            return pom_file.read_bytes()
        return self.extract_file(
            resource,
            f"META-INF/maven/{resource.group_id}/{resource.artifact_id}/pom.xml",
        )

    def scm_reference(
        self, resource: MavenResource | FileResource
    ) -> GitReference | None:
        """Read the SCM connection and tag from the artifact's POM.

        Returns:
            GitReference for the POM's ``<scm>`` section, or None if the
            artifact has no readable POM or the POM declares no connection
        """
        if not isinstance(resource, MavenResource):
            return None
        try:
            pom = self._read_pom(resource)
            if pom is None:
                logger.warning(
                    f"Maven project could not be extracted from {resource}: "
                    "no POM found"
                )
                return None
            root = ET.fromstring(pom)
        except (OSError, ET.ParseError) as e:
            logger.warning(f"Maven project could not be extracted from {resource}: {e}")
            return None

        scm = root.find(f"{_POM_NAMESPACE}scm")
        if scm is None:
            scm = root.find("scm")
        if scm is None:
            return None

        connection = _child_text(scm, "connection") or _child_text(
            scm, "developerConnection"
        )
        if not connection:
            return None
        tag = _child_text(scm, "tag")
        return GitReference(uri=connection, ref=tag or DEFAULT_GIT_REF)


def _child_text(element: ET.Element, name: str) -> str | None:
    child = element.find(f"{_POM_NAMESPACE}{name}")
    if child is None:
        child = element.find(name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None
