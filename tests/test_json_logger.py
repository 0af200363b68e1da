import io
import json

import pytest

from tpp_uploader.json_logger import JsonLogger, log_event, timed_event


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_events_carry_run_id_and_bound_context():
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream)

    log_event(logger=logger.bind(component="monitor"), phase="monitor", message="status", build_status="Pending")

    (entry,) = _lines(stream)
    assert entry["run_id"] == "run-1"
    assert entry["component"] == "monitor"
    assert entry["status"] == "ok"
    assert entry["build_status"] == "Pending"
    assert "ts" in entry


def test_log_file_mirror(tmp_path):
    log_path = tmp_path / "logs" / "run.jsonl"
    logger = JsonLogger(run_id="run-1", stream=io.StringIO(), log_file_path=str(log_path))

    logger.warn(phase="auth", message="navbar missing")
    logger.close()

    (entry,) = [json.loads(line) for line in log_path.read_text().splitlines()]
    assert entry["status"] == "warn"


def test_closed_logger_drops_events():
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream)
    logger.close()

    logger.error(phase="download", message="late")

    assert stream.getvalue() == ""


def test_timed_event_logs_failure_and_reraises():
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream)

    with pytest.raises(ValueError):
        with timed_event(logger=logger, phase="download", message="wait"):
            raise ValueError("boom")

    (entry,) = _lines(stream)
    assert entry["status"] == "error"
    assert entry["message"] == "wait failed: boom"
    assert "duration_ms" in entry
