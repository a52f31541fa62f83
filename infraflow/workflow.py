"""
Apply and destroy workflows as explicit state machines.

APPLY:   INIT -> VALIDATED -> PLANNED -> CONFIRMED -> APPLIED -> SYNCED
DESTROY: INIT -> REAPED -> CONFIRMED -> DESTROYED -> DESYNCED

FAILED and CANCELLED are terminal. Nothing is retried: recovery is an
explicit re-run by the operator.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .applier import Applier
from .config import Settings
from .destroyer import Destroyer
from .errors import InfraflowError, InvalidTransition, LocalSyncError
from .events import emit_event, EventTypes
from .models import ChangeSet, DeploymentTarget
from .preflight import check_aws_credentials, check_dependencies
from .reaper import Reaper
from .state import read_outputs_json
from .sync import Synchronizer

logger = logging.getLogger(__name__)


class FlowState(Enum):
    INIT = "init"
    VALIDATED = "validated"
    PLANNED = "planned"
    CONFIRMED = "confirmed"
    APPLIED = "applied"
    SYNCED = "synced"
    REAPED = "reaped"
    DESTROYED = "destroyed"
    DESYNCED = "desynced"
    CANCELLED = "cancelled"
    FAILED = "failed"


APPLY_TRANSITIONS: Dict[FlowState, List[FlowState]] = {
    FlowState.INIT: [FlowState.VALIDATED, FlowState.FAILED],
    FlowState.VALIDATED: [FlowState.PLANNED, FlowState.FAILED],
    FlowState.PLANNED: [FlowState.CONFIRMED, FlowState.CANCELLED, FlowState.FAILED],
    FlowState.CONFIRMED: [FlowState.APPLIED, FlowState.FAILED],
    FlowState.APPLIED: [FlowState.SYNCED],
    FlowState.SYNCED: [],
    FlowState.CANCELLED: [],
    FlowState.FAILED: [],
}

DESTROY_TRANSITIONS: Dict[FlowState, List[FlowState]] = {
    FlowState.INIT: [FlowState.REAPED, FlowState.CANCELLED, FlowState.FAILED],
    FlowState.REAPED: [FlowState.CONFIRMED, FlowState.FAILED],
    FlowState.CONFIRMED: [FlowState.DESTROYED, FlowState.FAILED],
    FlowState.DESTROYED: [FlowState.DESYNCED],
    FlowState.DESYNCED: [],
    FlowState.CANCELLED: [],
    FlowState.FAILED: [],
}


@dataclass
class WorkflowResult:
    flow: str
    state: FlowState = FlowState.INIT
    history: List[FlowState] = field(default_factory=lambda: [FlowState.INIT])
    target: Optional[DeploymentTarget] = None
    change_set: Optional[ChangeSet] = None
    reaped: int = 0
    error: Optional[InfraflowError] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state != FlowState.FAILED


class _Flow:
    """Tracks one run through a transition table."""

    def __init__(self, name: str, transitions: Dict[FlowState, List[FlowState]]):
        self.transitions = transitions
        self.result = WorkflowResult(flow=name)

    @property
    def state(self) -> FlowState:
        return self.result.state

    def can_transition_to(self, target_state: FlowState) -> bool:
        return target_state in self.transitions.get(self.state, [])

    def advance(self, target_state: FlowState) -> None:
        if not self.can_transition_to(target_state):
            raise InvalidTransition(
                f"{self.result.flow}: cannot go from {self.state.value} to {target_state.value}"
            )
        logger.debug("%s: %s -> %s", self.result.flow, self.state.value, target_state.value)
        self.result.state = target_state
        self.result.history.append(target_state)


class Workflow:
    """Sequences applier, reaper, destroyer and synchronizer."""

    def __init__(
        self,
        settings: Settings,
        applier: Optional[Applier] = None,
        reaper: Optional[Reaper] = None,
        destroyer: Optional[Destroyer] = None,
        synchronizer: Optional[Synchronizer] = None,
        preflight: bool = True,
    ):
        self.settings = settings
        self.applier = applier or Applier(settings)
        self.reaper = reaper or Reaper(settings)
        self.destroyer = destroyer or Destroyer(settings)
        self.synchronizer = synchronizer or Synchronizer(settings)
        self.preflight = preflight

    def run_preflight(self) -> None:
        check_dependencies(self.settings)
        arn = check_aws_credentials(self.settings.default_region)
        emit_event(self.settings.home, EventTypes.PREFLIGHT_OK, {"caller": arn})

    def run_apply(self, confirm: Callable[[ChangeSet], bool]) -> WorkflowResult:
        """
        Validate, plan, ask ``confirm``, apply and sync.

        Args:
            confirm: Called with the plan; returns True to proceed

        Returns:
            WorkflowResult; ``state`` is SYNCED, APPLIED (sync failed),
            CANCELLED or FAILED
        """
        flow = _Flow("apply", APPLY_TRANSITIONS)
        result = flow.result
        try:
            if self.preflight:
                self.run_preflight()
            self.applier.validate()
            flow.advance(FlowState.VALIDATED)

            result.change_set = self.applier.plan()
            flow.advance(FlowState.PLANNED)

            if not confirm(result.change_set):
                self.applier.apply(result.change_set, confirmed=False)
                flow.advance(FlowState.CANCELLED)
                return result
            flow.advance(FlowState.CONFIRMED)

            result.target = self.applier.apply(result.change_set, confirmed=True)
            flow.advance(FlowState.APPLIED)
        except InfraflowError as e:
            self._fail(flow, e)
            return result

        try:
            self.synchronizer.sync_apply(result.target)
            flow.advance(FlowState.SYNCED)
        except LocalSyncError as e:
            message = f"Local credential sync failed: {e}"
            logger.warning(message)
            result.warnings.append(message)
            emit_event(self.settings.home, EventTypes.SYNC_WARNING, {"reason": str(e), "output": e.output})

        return result

    def current_target(self) -> Optional[DeploymentTarget]:
        """
        Resolve the target from live outputs, falling back to cached ones.
        """
        target = self.applier.resolve_target()
        if target:
            return target

        cached = read_outputs_json(self.settings.home) or {}
        cluster_name = cached.get(self.settings.cluster_name_output)
        if cluster_name:
            return DeploymentTarget(
                cluster_name=cluster_name,
                region=cached.get(self.settings.region_output) or self.settings.default_region,
                endpoint=cached.get(self.settings.endpoint_output),
            )
        return None

    def run_destroy(self, confirm: Callable[[Optional[DeploymentTarget]], bool]) -> WorkflowResult:
        """
        Ask ``confirm``, then reap, destroy and clean local credentials.

        Confirmation is asked before any remote mutation, including the
        reap, so declining leaves everything untouched.

        Args:
            confirm: Called with the target (None if no cluster is in state)

        Returns:
            WorkflowResult; ``state`` is DESYNCED, CANCELLED or FAILED
        """
        flow = _Flow("destroy", DESTROY_TRANSITIONS)
        result = flow.result
        try:
            result.target = self.current_target()
            if not confirm(result.target):
                self.destroyer.destroy(result.target, confirmed=False)
                flow.advance(FlowState.CANCELLED)
                return result

            result.reaped = self.reaper.reap(result.target)
            flow.advance(FlowState.REAPED)
            flow.advance(FlowState.CONFIRMED)

            self.destroyer.destroy(result.target, confirmed=True)
            flow.advance(FlowState.DESTROYED)
        except InfraflowError as e:
            self._fail(flow, e)
            return result

        name = result.target.name if result.target else self.settings.default_cluster_name
        self.synchronizer.sync_cleanup(name)
        flow.advance(FlowState.DESYNCED)
        return result

    def _fail(self, flow: _Flow, error: InfraflowError) -> None:
        logger.error("%s failed during %s: %s", flow.result.flow, error.phase, error)
        if error.output:
            logger.error("%s", error.output)
        flow.result.error = error
        emit_event(self.settings.home, EventTypes.ERROR, {
            "flow": flow.result.flow,
            "phase": error.phase,
            "reason": str(error),
            "last_lines": error.output.splitlines(),
        })
        flow.advance(FlowState.FAILED)
