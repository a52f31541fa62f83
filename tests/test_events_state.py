from infraflow.events import EventTypes, emit_event, get_status_from_events, read_events
from infraflow.state import (
    phase_seq, read_outputs_json, reaped_since_last_apply, record_phase, write_outputs_json,
)


def test_status_progression_basic(tmp_path):
    home = tmp_path / ".infraflow"
    assert get_status_from_events(home) == "unknown"

    emit_event(home, EventTypes.TF_PLAN, {"adds": 1})
    assert get_status_from_events(home) == "planned"
    emit_event(home, EventTypes.TF_APPLY_DONE, {})
    assert get_status_from_events(home) == "applied"
    emit_event(home, EventTypes.SYNC_DONE, {})
    assert get_status_from_events(home) == "synced"
    emit_event(home, EventTypes.ERROR, {"phase": "destroy"})
    assert get_status_from_events(home) == "failed"


def test_malformed_lines_are_skipped(tmp_path):
    home = tmp_path
    emit_event(home, EventTypes.REAP_START)
    with open(home / "events.ndjson", "a") as f:
        f.write("{not json\n\n")
    emit_event(home, EventTypes.REAP_DONE, {"reaped": 0})

    assert [e["type"] for e in read_events(home)] == [EventTypes.REAP_START, EventTypes.REAP_DONE]


def test_reap_required_after_each_apply(tmp_path):
    assert not reaped_since_last_apply(tmp_path)

    record_phase(tmp_path, "reaped")
    assert reaped_since_last_apply(tmp_path)

    record_phase(tmp_path, "applied")
    assert not reaped_since_last_apply(tmp_path)

    record_phase(tmp_path, "reaped")
    assert reaped_since_last_apply(tmp_path)
    assert phase_seq(tmp_path, "reaped") == 3


def test_outputs_cache(tmp_path):
    assert read_outputs_json(tmp_path) is None

    write_outputs_json(tmp_path, {"cluster_name": "demo-eks-cluster"})

    assert read_outputs_json(tmp_path) == {"cluster_name": "demo-eks-cluster"}
