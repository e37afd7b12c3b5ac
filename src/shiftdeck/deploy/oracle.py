"""Build existence check: the idempotency gate for image builds."""

from __future__ import annotations

from shiftdeck.deploy import properties as props
from shiftdeck.deploy.cluster import ClusterClient, ResourceKind
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BuildPhase, BuildRecord
from shiftdeck.models.request import DeploymentRequest
from shiftdeck.models.settings import DeployerSettings

logger = get_logger(__name__)

# Builds in these phases never produce an image
_UNUSABLE_PHASES = (BuildPhase.FAILED, BuildPhase.ERROR, BuildPhase.CANCELLED)


class BuildExistenceOracle:
    """Decides whether an artifact already has a reusable image build.

    Args:
        cluster: Cluster client
        settings: Deployer settings (global force-build flag)
    """

    def __init__(self, cluster: ClusterClient, settings: DeployerSettings) -> None:
        self._cluster = cluster
        self._settings = settings

    def list_builds(self, app_id: str) -> list[BuildRecord]:
        """All builds labeled with the application's identity."""
        manifests = self._cluster.list(ResourceKind.BUILD, props.app_selector(app_id))
        return [BuildRecord.from_manifest(m) for m in manifests]

    def _force_property(self, request: DeploymentRequest) -> bool | None:
        value = props.deployment_properties(request).get(props.BUILD_FORCE)
        if value is None or not value.strip():
            return None
        return props.get_bool({props.BUILD_FORCE: value}, props.BUILD_FORCE)

    def exists(self, request: DeploymentRequest, app_id: str, fingerprint: str) -> bool:
        """Whether a build for this artifact exists and may be reused.

        An explicit force-build deployment property is honored
        unconditionally: ``true`` always rebuilds, ``false`` never does.
        Otherwise the deployer-wide force flag applies, and finally the
        builds labeled with ``app_id`` are searched for a usable build
        carrying ``fingerprint``.

        Args:
            request: Deployment request
            app_id: Application id the builds are labeled with
            fingerprint: Fingerprint of the artifact being deployed

        Returns:
            True if no new build should be submitted
        """
        forced = self._force_property(request)
        if forced is not None:
            logger.debug(f"Force build for '{app_id}' set explicitly to {forced}")
            return not forced
        if self._settings.force_build:
            return False
        return self.find_reusable(request, app_id, fingerprint) is not None

    def find_reusable(
        self, request: DeploymentRequest, app_id: str, fingerprint: str
    ) -> BuildRecord | None:
        """Find the build whose image can be reused for this artifact.

        When rebuilding is explicitly forbidden, the latest usable build is
        returned even if its fingerprint differs.

        Returns:
            The most recent matching build, or None
        """
        if self._force_property(request) is True:
            return None

        usable = [b for b in self.list_builds(app_id) if b.phase not in _UNUSABLE_PHASES]
        matching = [b for b in usable if b.fingerprint == fingerprint]
        if not matching and self._force_property(request) is False:
            matching = usable
        if not matching:
            return None
        build = matching[-1]
        logger.debug(f"Found reusable build '{build.name}' ({build.phase.value})")
        return build
