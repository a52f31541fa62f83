"""
Local state for the orchestrator: cached outputs and the phase ledger.

The engine's own state file is never read or written here. The ledger
only records which workflow phases ran, in order, so that a destroy can
check that a reap was attempted since the last apply.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

LEDGER_FILE = "ledger.json"
OUTPUTS_FILE = "outputs.json"


def ensure_home(home: Path) -> Path:
    """
    Create the state home if needed and return it.

    Args:
        home: State directory

    Returns:
        Path: The state directory
    """
    home.mkdir(parents=True, exist_ok=True)
    return home


def write_outputs_json(home: Path, outputs: Dict[str, Any]) -> None:
    """
    Cache Terraform outputs to outputs.json.

    Args:
        home: State directory
        outputs: Terraform outputs
    """
    ensure_home(home)
    with open(home / OUTPUTS_FILE, "w") as f:
        json.dump(outputs, f, indent=2)


def read_outputs_json(home: Path) -> Optional[Dict[str, Any]]:
    """
    Read cached Terraform outputs.

    Returns:
        Dict: Outputs or None if not cached
    """
    outputs_file = home / OUTPUTS_FILE
    if not outputs_file.exists():
        return None
    try:
        with open(outputs_file, "r") as f:
            return json.load(f)
    except json.JSONDecodeError:
        return None


def clear_outputs_json(home: Path) -> bool:
    outputs_file = home / OUTPUTS_FILE
    if outputs_file.exists():
        outputs_file.unlink()
        return True
    return False


def _read_ledger(home: Path) -> Dict[str, Any]:
    ledger_file = home / LEDGER_FILE
    if not ledger_file.exists():
        return {"seq": 0, "phases": {}}
    try:
        with open(ledger_file, "r") as f:
            ledger = json.load(f)
    except json.JSONDecodeError:
        return {"seq": 0, "phases": {}}
    ledger.setdefault("seq", 0)
    ledger.setdefault("phases", {})
    return ledger


def record_phase(home: Path, phase: str) -> int:
    """
    Record that a phase completed (or was attempted, for reap).

    Args:
        home: State directory
        phase: Phase name, e.g. "applied", "reaped", "destroyed"

    Returns:
        int: Sequence number assigned to this record
    """
    ensure_home(home)
    ledger = _read_ledger(home)
    ledger["seq"] += 1
    ledger["phases"][phase] = {
        "seq": ledger["seq"],
        "at": datetime.now().isoformat(),
    }
    with open(home / LEDGER_FILE, "w") as f:
        json.dump(ledger, f, indent=2)
    return ledger["seq"]


def phase_seq(home: Path, phase: str) -> int:
    """Sequence number of the last record for ``phase``, 0 if never recorded."""
    entry = _read_ledger(home)["phases"].get(phase)
    return entry["seq"] if entry else 0


def reaped_since_last_apply(home: Path) -> bool:
    """
    Check that a reap was attempted after the most recent apply.

    A workspace that was never applied through the orchestrator still
    needs one reap before it may be destroyed.
    """
    reaped = phase_seq(home, "reaped")
    return reaped > 0 and reaped > phase_seq(home, "applied")
