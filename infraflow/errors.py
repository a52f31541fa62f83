"""
Error taxonomy for workflow phases.
"""


class InfraflowError(Exception):
    """Base error. ``output`` carries the external tool's output verbatim."""

    phase = "unknown"
    fatal = True

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class PreflightError(InfraflowError):
    phase = "preflight"


class InitError(InfraflowError):
    phase = "init"


class DeclarationSyntaxError(InfraflowError):
    """Malformed declaration; fix and retry."""
    phase = "validate"


class PlanError(InfraflowError):
    phase = "plan"


class ApplyError(InfraflowError):
    """Remote state may be mixed; re-running apply is the recovery path."""
    phase = "apply"


class ReapError(InfraflowError):
    phase = "reap"
    fatal = False


class DestroyError(InfraflowError):
    """Dangling billable resources may remain."""
    phase = "destroy"


class LocalSyncError(InfraflowError):
    phase = "sync"
    fatal = False


class InvalidTransition(InfraflowError):
    phase = "workflow"
