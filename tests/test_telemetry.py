from __future__ import annotations

import json

import pytest

from spfarms.core.errors import TransitionError
from spfarms.telemetry import TransitionLogger, append_jsonl, tail_jsonl


def _read(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_append_and_tail_jsonl(tmp_path):
    path = tmp_path / "nested" / "log.jsonl"
    for i in range(5):
        append_jsonl(path, {"i": i})
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n\n[1, 2]\n")
    assert [r["i"] for r in tail_jsonl(path, 3)] == [2, 3, 4]
    assert tail_jsonl(tmp_path / "missing.jsonl", 3) == []


def test_transition_logger_success(tmp_path):
    path = tmp_path / "transitions.jsonl"
    with TransitionLogger(path, harvest_id=7, action="finish_drying", from_status="drying", role="admin") as log:
        log.strain_recorded(1)
        log.strain_recorded(2)
        log.succeeded("dried")
    (record,) = _read(path)
    assert record["record_type"] == "transition"
    assert record["status"] == "ok"
    assert record["error"] is None
    assert record["to_status"] == "dried"
    assert record["recorded_strain_ids"] == [1, 2]
    assert record["run_id"] == log.run_id
    assert record["duration_seconds"] >= 0


def test_transition_logger_error_propagates(tmp_path):
    path = tmp_path / "transitions.jsonl"
    with pytest.raises(TransitionError):
        with TransitionLogger(path, harvest_id=7, action="close", from_status="packaged"):
            raise TransitionError("Failed to close harvest", action="close", recorded_strain_ids=[3])
    (record,) = _read(path)
    assert record["status"] == "error"
    assert record["error"] == "Failed to close harvest"
    assert record["recorded_strain_ids"] == [3]
    assert record["to_status"] is None


def test_transition_logger_warns_when_log_unwritable(tmp_path):
    with pytest.warns(RuntimeWarning, match="Could not write transition record"):
        with TransitionLogger(tmp_path, harvest_id=7, action="start_trimming", from_status="dried") as log:
            log.succeeded("trimming")
    assert list(tmp_path.iterdir()) == []
