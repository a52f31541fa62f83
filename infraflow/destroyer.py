"""
Destroyer: irreversible teardown through terraform destroy.
"""

import logging
from typing import Optional

from .config import Settings
from .errors import DestroyError
from .events import emit_event, EventTypes
from .models import DeploymentTarget
from .state import reaped_since_last_apply, record_phase
from .terraform import tf_destroy

logger = logging.getLogger(__name__)

MANUAL_CLEANUP_HINT = (
    "Dangling cloud resources (load balancers, ENIs, security groups) may remain "
    "and keep accruing cost. Inspect the AWS console and re-run destroy."
)


class Destroyer:

    def __init__(self, settings: Settings):
        self.settings = settings

    def destroy(self, target: Optional[DeploymentTarget], confirmed: bool) -> bool:
        """
        Destroy all resources in the terraform state.

        Args:
            target: Target being destroyed, for reporting only
            confirmed: Operator confirmation for destruction

        Returns:
            True if destroyed, False if not confirmed

        Raises:
            DestroyError: If no reap ran since the last apply, or terraform destroy fails
        """
        if not confirmed:
            logger.info("Destruction cancelled.")
            emit_event(self.settings.home, EventTypes.DESTROY_CANCELLED, {})
            return False

        if not reaped_since_last_apply(self.settings.home):
            raise DestroyError(
                "Refusing to destroy: dangling resources have not been reaped since the last apply"
            )

        name = target.name if target else None
        emit_event(self.settings.home, EventTypes.DESTROY_START, {"cluster_name": name})
        logger.info("Destroying infrastructure with Terraform...")

        result = tf_destroy(self.settings)
        if not result.ok:
            raise DestroyError(
                f"terraform destroy failed. {MANUAL_CLEANUP_HINT}",
                "\n".join(result.tail()),
            )

        record_phase(self.settings.home, "destroyed")
        emit_event(self.settings.home, EventTypes.DESTROY_DONE, {"ok": True, "cluster_name": name})
        logger.info("Infrastructure destroyed successfully!")
        return True
