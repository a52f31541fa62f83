"""
Dependency-ordered applier: validate, plan, then apply on confirmation.
"""

import logging
from typing import Optional

from .config import Settings
from .errors import ApplyError, DeclarationSyntaxError, InitError, PlanError
from .events import emit_event, EventTypes
from .models import ChangeSet, DeploymentTarget
from .state import record_phase, write_outputs_json
from .terraform import (
    PLAN_FILE, get_terraform_output, get_terraform_outputs, parse_plan_output,
    tf_apply, tf_init, tf_plan, tf_validate,
)

logger = logging.getLogger(__name__)


def _failure_output(result) -> str:
    return "\n".join(result.tail())


class Applier:
    """Converges infrastructure to the declared state through terraform."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def init(self) -> None:
        logger.info("Initializing Terraform...")
        result = tf_init(self.settings)
        if not result.ok:
            raise InitError("terraform init failed", _failure_output(result))

    def validate(self) -> None:
        """
        Initialize the working directory and validate the configuration.

        Raises:
            InitError: If terraform init fails
            DeclarationSyntaxError: If the configuration is malformed
        """
        self.init()
        logger.info("Validating Terraform configuration...")
        result = tf_validate(self.settings)
        if not result.ok:
            raise DeclarationSyntaxError("terraform validate failed", _failure_output(result))

    def plan(self) -> ChangeSet:
        """
        Compute and save a plan.

        Returns:
            ChangeSet describing the pending changes

        Raises:
            PlanError: If terraform cannot compute the diff
        """
        logger.info("Planning Terraform deployment...")
        result = tf_plan(self.settings)
        if not result.ok:
            raise PlanError("terraform plan failed", _failure_output(result))

        change_set = parse_plan_output(result.output)
        plan_file = self.settings.home / PLAN_FILE
        change_set.plan_file = plan_file if plan_file.exists() else None

        emit_event(self.settings.home, EventTypes.TF_PLAN, {
            "adds": change_set.adds,
            "changes": change_set.changes,
            "destroys": change_set.destroys,
            "ok": True,
        })
        logger.info("Plan: %s", change_set.summary())
        return change_set

    def apply(self, change_set: ChangeSet, confirmed: bool) -> Optional[DeploymentTarget]:
        """
        Apply a plan. Without confirmation nothing runs.

        Args:
            change_set: Plan returned by :meth:`plan`
            confirmed: Operator confirmation

        Returns:
            DeploymentTarget read from outputs, or None when not confirmed

        Raises:
            ApplyError: If terraform apply fails; remote state may be mixed
        """
        if not confirmed:
            logger.warning("Deployment cancelled.")
            emit_event(self.settings.home, EventTypes.APPLY_CANCELLED, {})
            return None

        emit_event(self.settings.home, EventTypes.TF_APPLY_START, {"plan": change_set.summary()})
        logger.info("Applying Terraform configuration...")
        result = tf_apply(self.settings, change_set.plan_file)
        if not result.ok:
            raise ApplyError(
                "terraform apply failed; remote state may be partially applied, re-run apply to converge",
                _failure_output(result),
            )

        record_phase(self.settings.home, "applied")
        write_outputs_json(self.settings.home, get_terraform_outputs(self.settings))
        target = self.resolve_target(required=True)
        emit_event(self.settings.home, EventTypes.TF_APPLY_DONE, {
            "ok": True,
            "cluster_name": target.cluster_name,
            "region": target.region,
        })
        return target

    def resolve_target(self, required: bool = False) -> Optional[DeploymentTarget]:
        """
        Read the deployment target from terraform outputs.

        Args:
            required: Raise instead of returning None when outputs are absent

        Raises:
            ApplyError: If ``required`` and the cluster name output is missing
        """
        cluster_name = get_terraform_output(self.settings, self.settings.cluster_name_output)
        if not cluster_name:
            if required:
                raise ApplyError(
                    f"terraform output '{self.settings.cluster_name_output}' is missing after apply"
                )
            return None

        region = get_terraform_output(self.settings, self.settings.region_output) or self.settings.default_region
        endpoint = get_terraform_output(self.settings, self.settings.endpoint_output) or None
        return DeploymentTarget(cluster_name=cluster_name, region=region, endpoint=endpoint)
