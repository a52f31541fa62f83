"""
Terraform wrapper functions for the apply and destroy workflows.
"""

import json
import logging
import re
from typing import Any, Dict, List

from .config import Settings
from .events import emit_event, EventTypes
from .models import ChangeSet
from .runner import CommandResult, run_command
from .state import ensure_home

logger = logging.getLogger(__name__)

PLAN_FILE = "tfplan"

_PLAN_SUMMARY = re.compile(
    r"Plan:\s+(\d+)\s+to add,\s+(\d+)\s+to change,\s+(\d+)\s+to destroy"
)


def _run_terraform_command(settings: Settings, args: List[str], line_event: str = None) -> CommandResult:
    """
    Run a terraform subcommand in the working directory.

    Args:
        settings: Orchestrator settings
        args: Arguments after the terraform binary
        line_event: Event type emitted for every output line, if any

    Returns:
        CommandResult
    """
    home = ensure_home(settings.home)
    on_line = None
    if line_event:
        on_line = lambda line: emit_event(home, line_event, {"line": line})

    result = run_command(
        [settings.terraform_bin, *args],
        cwd=settings.working_dir,
        log_file=home / "terraform.log",
        on_line=on_line,
    )
    if not result.ok:
        logger.error("terraform %s failed with exit code %s", args[0], result.returncode)
    return result


def tf_init(settings: Settings) -> CommandResult:
    result = _run_terraform_command(settings, ["init", "-input=false", "-no-color"])
    if result.ok:
        emit_event(settings.home, EventTypes.TF_INIT, {"ok": True})
    return result


def tf_validate(settings: Settings) -> CommandResult:
    result = _run_terraform_command(settings, ["validate", "-no-color"])
    if result.ok:
        emit_event(settings.home, EventTypes.TF_VALIDATE, {"ok": True})
    return result


def tf_plan(settings: Settings) -> CommandResult:
    plan_file = settings.home / PLAN_FILE
    return _run_terraform_command(
        settings, ["plan", "-input=false", "-no-color", f"-out={plan_file}"]
    )


def tf_apply(settings: Settings, plan_file=None) -> CommandResult:
    args = ["apply", "-auto-approve", "-input=false", "-no-color"]
    if plan_file:
        args.append(str(plan_file))
    return _run_terraform_command(settings, args, EventTypes.TF_APPLY_LINE)


def tf_destroy(settings: Settings) -> CommandResult:
    return _run_terraform_command(
        settings,
        ["destroy", "-auto-approve", "-input=false", "-no-color"],
        EventTypes.DESTROY_LINE,
    )


def parse_plan_output(output: str) -> ChangeSet:
    """
    Extract resource counts from terraform plan output.

    Args:
        output: Plan output text

    Returns:
        ChangeSet with counts filled in
    """
    match = _PLAN_SUMMARY.search(output)
    if match:
        adds, changes, destroys = (int(group) for group in match.groups())
    elif "No changes." in output:
        adds = changes = destroys = 0
    else:
        adds = output.count("will be created")
        changes = output.count("will be updated")
        destroys = output.count("will be destroyed")
        # A replacement shows up as both a destroy and a create.
        replaced = output.count("must be replaced")
        adds += replaced
        destroys += replaced

    return ChangeSet(adds=adds, changes=changes, destroys=destroys, output=output)


def get_terraform_output(settings: Settings, output_name: str) -> str:
    """
    Get a specific terraform output value.

    Args:
        settings: Orchestrator settings
        output_name: Name of the output

    Returns:
        Output value as string, empty if the output is absent
    """
    result = run_command(
        [settings.terraform_bin, "output", "-raw", output_name],
        cwd=settings.working_dir,
        merge_stderr=False,
    )
    if not result.ok:
        logger.debug("terraform output %s unavailable: %s", output_name, result.stderr)
        return ""
    # warnings, including "No outputs found", go to stderr
    return result.output.strip()


def get_terraform_outputs(settings: Settings) -> Dict[str, Any]:
    """
    Get all terraform outputs as a name -> value mapping.
    """
    result = run_command(
        [settings.terraform_bin, "output", "-json"],
        cwd=settings.working_dir,
        merge_stderr=False,
    )
    if not result.ok:
        logger.warning("Failed to get terraform outputs: %s", result.stderr)
        return {}
    try:
        raw = json.loads(result.output or "{}")
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse terraform outputs: %s", e)
        return {}
    return {name: entry.get("value") for name, entry in raw.items() if isinstance(entry, dict)}
