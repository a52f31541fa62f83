"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .state import ensure_home

EVENTS_FILE = "events.ndjson"


def emit_event(home: Path, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
    """
    Append an event to the workspace's events.ndjson file.

    Args:
        home: State directory
        event_type: Event type (e.g., "TF_PLAN", "REAP_DONE", "ERROR")
        data: Event data
    """
    ensure_home(home)
    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data or {},
    }

    with open(home / EVENTS_FILE, "a") as f:
        f.write(json.dumps(event, default=str) + "\n")
        f.flush()


def read_events(home: Path) -> List[Dict[str, Any]]:
    """
    Read all events, skipping malformed lines.
    """
    events_file = home / EVENTS_FILE
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events


def get_last_event(home: Path) -> Optional[Dict[str, Any]]:
    events = read_events(home)
    return events[-1] if events else None


def get_status_from_events(home: Path) -> str:
    """
    Determine workspace status from the last event.

    Returns:
        Status string
    """
    last_event = get_last_event(home)
    if not last_event:
        return "unknown"

    status_map = {
        EventTypes.PREFLIGHT_OK: "preflight",
        EventTypes.TF_INIT: "init",
        EventTypes.TF_VALIDATE: "validated",
        EventTypes.TF_PLAN: "planned",
        EventTypes.APPLY_CANCELLED: "cancelled",
        EventTypes.TF_APPLY_START: "applying",
        EventTypes.TF_APPLY_LINE: "applying",
        EventTypes.TF_APPLY_DONE: "applied",
        EventTypes.SYNC_DONE: "synced",
        EventTypes.SYNC_WARNING: "applied",
        EventTypes.REAP_START: "reaping",
        EventTypes.REAP_DELETED: "reaping",
        EventTypes.REAP_WARNING: "reaping",
        EventTypes.REAP_TIMEOUT: "reaped",
        EventTypes.REAP_DONE: "reaped",
        EventTypes.DESTROY_CANCELLED: "cancelled",
        EventTypes.DESTROY_START: "destroying",
        EventTypes.DESTROY_LINE: "destroying",
        EventTypes.DESTROY_DONE: "destroyed",
        EventTypes.DESYNC_DONE: "desynced",
        EventTypes.ERROR: "failed",
    }

    return status_map.get(last_event.get("type", ""), "unknown")


class EventTypes:
    PREFLIGHT_OK = "PREFLIGHT_OK"
    TF_INIT = "TF_INIT"
    TF_VALIDATE = "TF_VALIDATE"
    TF_PLAN = "TF_PLAN"
    TF_APPLY_START = "TF_APPLY_START"
    TF_APPLY_LINE = "TF_APPLY_LINE"
    TF_APPLY_DONE = "TF_APPLY_DONE"
    APPLY_CANCELLED = "APPLY_CANCELLED"
    SYNC_DONE = "SYNC_DONE"
    SYNC_WARNING = "SYNC_WARNING"
    # Teardown
    REAP_START = "REAP_START"
    REAP_DELETED = "REAP_DELETED"
    REAP_WARNING = "REAP_WARNING"
    REAP_TIMEOUT = "REAP_TIMEOUT"
    REAP_DONE = "REAP_DONE"
    DESTROY_CANCELLED = "DESTROY_CANCELLED"
    DESTROY_START = "DESTROY_START"
    DESTROY_LINE = "DESTROY_LINE"
    DESTROY_DONE = "DESTROY_DONE"
    DESYNC_DONE = "DESYNC_DONE"
    ERROR = "ERROR"
