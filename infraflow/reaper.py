"""
Pre-teardown reaper for controller-created resources.

Load balancers created by the AWS Load Balancer Controller for ingress
objects are not in the terraform state, and they keep the VPC subnets
busy. Deleting the ingress objects makes the controller deprovision
them out-of-band, so the reaper polls until they are gone, within a
bounded timeout, before destroy runs.
"""

import logging
import time
from typing import Callable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import ReapError
from .events import emit_event, EventTypes
from .kube import Kubectl, KubectlError
from .models import DanglingResource, DeploymentTarget
from .state import record_phase

logger = logging.getLogger(__name__)

# Tags the load balancer controllers put on what they create
LBC_CLUSTER_TAG = "elbv2.k8s.aws/cluster"
LEGACY_CLUSTER_TAG_PREFIX = "kubernetes.io/cluster/"

_DESCRIBE_TAGS_BATCH = 20


class Reaper:
    """Removes dangling resources scoped to a target before destroy."""

    def __init__(
        self,
        settings: Settings,
        kubectl_factory: Callable[..., Kubectl] = Kubectl,
        client_factory: Callable = boto3.client,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.kubectl_factory = kubectl_factory
        self.client_factory = client_factory
        self.sleep = sleep
        self.clock = clock

    def reap(self, target: Optional[DeploymentTarget]) -> int:
        """
        Delete dangling resources for ``target`` and wait for them to settle.

        Never raises: failures are logged and emitted as warnings.

        Args:
            target: Target to reap, or None when no cluster exists

        Returns:
            Number of resources deleted
        """
        home = self.settings.home
        if target is None:
            logger.info("No cluster in state; skipping LoadBalancer cleanup")
            record_phase(home, "reaped")
            emit_event(home, EventTypes.REAP_DONE, {"reaped": 0, "skipped": True})
            return 0

        logger.info("Cleaning up LoadBalancers for %s...", target.name)
        emit_event(home, EventTypes.REAP_START, {
            "cluster_name": target.name,
            "namespaces": self.settings.reap_namespaces,
            "kinds": self.settings.reap_kinds,
        })
        kubectl = self.kubectl_factory(self.settings, context=target.name)

        reaped = 0
        try:
            found = self.find_dangling(kubectl)
        except ReapError as e:
            self._warn(f"{e}. {_context_hint(target)}", e.output)
            found = []

        for resource in found:
            try:
                kubectl.delete(resource.kind, resource.name, resource.namespace)
            except KubectlError as e:
                self._warn(f"{e}; continuing", e.result.combined, resource=resource.ref)
                continue
            reaped += 1
            logger.info("Deleted %s", resource.ref)
            emit_event(home, EventTypes.REAP_DELETED, {"resource": resource.ref})

        settled = self.wait_until_clean(kubectl, target)

        record_phase(home, "reaped")
        emit_event(home, EventTypes.REAP_DONE, {"reaped": reaped, "settled": settled})
        return reaped

    def find_dangling(self, kubectl: Kubectl) -> List[DanglingResource]:
        """
        List controller-owned objects in the configured namespaces.

        Raises:
            ReapError: If listing fails
        """
        found = []
        for namespace in self.settings.reap_namespaces:
            for kind in self.settings.reap_kinds:
                try:
                    names = kubectl.list_names(kind, namespace)
                except KubectlError as e:
                    raise ReapError(str(e), e.result.combined) from e
                found.extend(DanglingResource(kind, name, namespace) for name in names)
        return found

    def find_load_balancers(self, target: DeploymentTarget) -> List[str]:
        """
        List ARNs of load balancers tagged as belonging to the target cluster.

        Raises:
            ReapError: If the ELBv2 API call fails
        """
        try:
            elbv2 = self.client_factory("elbv2", region_name=target.region)
            arns = []
            paginator = elbv2.get_paginator("describe_load_balancers")
            for page in paginator.paginate():
                arns.extend(lb["LoadBalancerArn"] for lb in page.get("LoadBalancers", []))

            owned = []
            for start in range(0, len(arns), _DESCRIBE_TAGS_BATCH):
                batch = arns[start:start + _DESCRIBE_TAGS_BATCH]
                response = elbv2.describe_tags(ResourceArns=batch)
                for description in response.get("TagDescriptions", []):
                    tags = {tag["Key"]: tag["Value"] for tag in description.get("Tags", [])}
                    if _owned_by(tags, target.cluster_name):
                        owned.append(description["ResourceArn"])
            return owned
        except (ClientError, BotoCoreError) as e:
            raise ReapError(f"Failed to list load balancers: {e}") from e

    def wait_until_clean(self, kubectl: Kubectl, target: DeploymentTarget) -> bool:
        """
        Poll until no dangling resources remain, or the timeout elapses.

        When kubectl cannot list objects the load balancer check still
        runs on its own.

        Returns:
            True if clean, False on timeout or when nothing could be checked
        """
        deadline = self.clock() + self.settings.reap_timeout
        if self.settings.reap_timeout:
            logger.info("Waiting for LoadBalancers to be cleaned up...")

        check_objects = True
        while True:
            remaining = []
            if check_objects:
                try:
                    remaining += [r.ref for r in self.find_dangling(kubectl)]
                except ReapError as e:
                    self._warn(f"Cannot confirm cleanup: {e}. {_context_hint(target)}", e.output)
                    check_objects = False

            if self.settings.reap_check_load_balancers:
                try:
                    remaining += self.find_load_balancers(target)
                except ReapError as e:
                    self._warn(f"Cannot confirm cleanup: {e}", e.output)
                    return False
            elif not check_objects:
                return False

            if not remaining:
                return True

            if self.clock() >= deadline:
                logger.warning(
                    "Timed out after %ss waiting for %d resource(s) to be deprovisioned; "
                    "destroy may fail and need manual cleanup",
                    self.settings.reap_timeout, len(remaining),
                )
                emit_event(self.settings.home, EventTypes.REAP_TIMEOUT, {
                    "timeout": self.settings.reap_timeout,
                    "remaining": remaining,
                })
                return False

            logger.debug("%d resource(s) still deprovisioning", len(remaining))
            self.sleep(self.settings.reap_poll_interval)

    def _warn(self, message: str, output: str = "", **data) -> None:
        logger.warning(message)
        emit_event(self.settings.home, EventTypes.REAP_WARNING, {
            "reason": message,
            "output": output,
            **data,
        })


def _owned_by(tags, cluster_name: str) -> bool:
    if tags.get(LBC_CLUSTER_TAG) == cluster_name:
        return True
    return f"{LEGACY_CLUSTER_TAG_PREFIX}{cluster_name}" in tags


def _context_hint(target: DeploymentTarget) -> str:
    return f"Check kubectl context {target.name}; run 'infraflow sync' to restore it"
