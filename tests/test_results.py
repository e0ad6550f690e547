"""Tests for saving and loading JSON session results."""

import json
import logging
from datetime import datetime

from spike_detector.models import SessionSummary
from spike_detector.results import find_session, load_session_results, save_session_result


def make_summary(started_at):
    return SessionSummary(
        destination="192.0.2.1",
        total_attempts=3,
        successes=3,
        failures=0,
        statistics=None,
        final_threshold=20.0,
        multiplier_percent=200.0,
        spikes=[],
        started_at=started_at,
        ended_at=started_at,
        elapsed_seconds=3.0,
    )


def write_valid(results_dir, session_id="20240101_120000_000000"):
    path = results_dir / f"session_{session_id}.json"
    path.write_text(json.dumps({"session_id": session_id, "started_at": "2024-01-01T12:00:00"}))
    return path


def test_save_leaves_only_the_result_file(tmp_path):
    out_file = save_session_result(make_summary(datetime(2024, 1, 1, 12, 0, 0)), str(tmp_path))

    assert out_file.name == "session_20240101_120000_000000.json"
    assert [p.name for p in tmp_path.iterdir()] == [out_file.name]
    assert json.loads(out_file.read_text())["counts"]["total_attempts"] == 3


def test_sessions_started_in_the_same_second_do_not_overwrite(tmp_path):
    save_session_result(make_summary(datetime(2024, 1, 1, 12, 0, 0, 1000)), str(tmp_path))
    save_session_result(make_summary(datetime(2024, 1, 1, 12, 0, 0, 2000)), str(tmp_path))

    assert len(load_session_results(str(tmp_path))) == 2


def test_undecodable_file_is_skipped(tmp_path, caplog):
    (tmp_path / "session_20240101_110000.json").write_bytes(b"\xff\xfe{bad")
    write_valid(tmp_path)

    with caplog.at_level(logging.ERROR, logger="uberping"):
        sessions = load_session_results(str(tmp_path))

    assert [s["session_id"] for s in sessions] == ["20240101_120000_000000"]
    assert "Skipping unreadable session file" in caplog.text


def test_non_object_document_is_skipped(tmp_path, caplog):
    (tmp_path / "session_20240101_110000.json").write_text("[1, 2, 3]")
    write_valid(tmp_path)

    with caplog.at_level(logging.ERROR, logger="uberping"):
        sessions = load_session_results(str(tmp_path))

    assert len(sessions) == 1
    assert "expected a JSON object" in caplog.text
    assert find_session(str(tmp_path))["session_id"] == "20240101_120000_000000"
