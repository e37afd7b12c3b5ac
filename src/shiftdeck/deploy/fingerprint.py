"""Content fingerprints used as the build-reuse key."""

import hashlib

from shiftdeck.lib.errors import ArtifactReadError
from shiftdeck.models.request import FileResource, MavenResource

_CHUNK_SIZE = 1024 * 1024


def fingerprint_bytes(data: bytes) -> str:
    """Compute a deterministic fingerprint for raw artifact bytes."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class ContentFingerprinter:
    """Computes stable identity hashes for deployable artifacts.

    Artifacts with a local file are hashed by content. Maven artifacts that
    have not been resolved to a file are hashed by their coordinates.
    """

    def fingerprint(self, resource: MavenResource | FileResource) -> str:
        """Fingerprint an artifact.

        Args:
            resource: The artifact to fingerprint

        Returns:
            Fingerprint string, identical for identical content

        Raises:
            ArtifactReadError: If the artifact file cannot be read
        """
        path = resource.local_path()
        if path is None and isinstance(resource, MavenResource):
            return fingerprint_bytes(resource.coordinates.encode("utf-8"))

        digest = hashlib.sha256()
        try:
            with open(path, "rb") as f:  # type: ignore[arg-type]
                for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                    digest.update(chunk)
        except (OSError, TypeError) as e:
            raise ArtifactReadError(str(resource), e) from e
        return f"sha256:{digest.hexdigest()}"
