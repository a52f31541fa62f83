"""
Local environment synchronizer: pulls credentials after apply, removes
them after destroy.
"""

import logging
from typing import Callable, Optional

import yaml

from .config import Settings
from .credentials import LocalCredentialStore, make_store
from .errors import LocalSyncError
from .events import emit_event, EventTypes
from .kube import Kubectl
from .models import DeploymentTarget, LocalCredentialArtifact
from .state import clear_outputs_json

logger = logging.getLogger(__name__)


class Synchronizer:

    def __init__(
        self,
        settings: Settings,
        store: Optional[LocalCredentialStore] = None,
        kubectl_factory: Callable[..., Kubectl] = Kubectl,
    ):
        self.settings = settings
        self.store = store or make_store(settings)
        self.kubectl_factory = kubectl_factory

    def sync_apply(self, target: DeploymentTarget) -> LocalCredentialArtifact:
        """
        Write credentials for ``target`` and check connectivity.

        Raises:
            LocalSyncError: If credentials cannot be written
        """
        logger.info("Configuring kubectl for %s in %s...", target.name, target.region)
        try:
            artifact = self.store.upsert(target)
        except (OSError, yaml.YAMLError) as e:
            raise LocalSyncError(f"Cannot update {self.settings.kubeconfig}: {e}") from e

        connected = self.check_connectivity(target)
        emit_event(self.settings.home, EventTypes.SYNC_DONE, {
            "context": artifact.context,
            "kubeconfig": str(artifact.kubeconfig),
            "connected": connected,
        })
        return artifact

    def check_connectivity(self, target: DeploymentTarget) -> bool:
        logger.info("Testing kubectl connection...")
        result = self.kubectl_factory(self.settings, context=target.name).get_nodes()
        if not result.ok:
            logger.warning("kubectl cannot reach %s yet: %s", target.name, result.output)
            return False
        logger.info("%s", result.output)
        return True

    def sync_cleanup(self, name: str) -> bool:
        """
        Remove local credentials for ``name``. Best effort; never raises.

        Returns:
            True if anything was removed
        """
        logger.info("Cleaning up kubectl configuration...")
        removed = False
        try:
            removed = self.store.remove(name)
        except (LocalSyncError, OSError, yaml.YAMLError) as e:
            logger.warning("Could not clean kubeconfig entries for %s: %s", name, e)
            emit_event(self.settings.home, EventTypes.SYNC_WARNING, {"reason": str(e)})

        try:
            clear_outputs_json(self.settings.home)
        except OSError as e:
            logger.warning("Could not remove cached outputs: %s", e)

        emit_event(self.settings.home, EventTypes.DESYNC_DONE, {"name": name, "removed": removed})
        logger.info("kubectl configuration cleaned up.")
        return removed
