"""
Tests for logging setup and run metrics.

Checklist:
- Rotating log files land in the configured log_dir
- Quiet mode drops the console handler
- Status-code breakdown reflects completions
- Dispatcher logs exactly one stop decision per run
"""

import logging

import pytest

from rate_limit_probe.core.utils.logging import ProbeMetrics, setup_logging
from rate_limit_probe.pipeline.dispatcher import run
from tests.fakes import ScriptedTransport, status_on


def test_file_handlers_write_to_log_dir(tmp_path):
    probe_logger = setup_logging({"level": "DEBUG", "log_dir": str(tmp_path / "logs"), "file_enabled": True})
    try:
        probe_logger.log_completion(200, 1)
        probe_logger.logger.error("target unreachable")
        for handler in probe_logger.logger.handlers:
            handler.flush()

        main_log = (tmp_path / "logs" / "rate_limit_probe.log").read_text()
        error_log = (tmp_path / "logs" / "errors.log").read_text()
    finally:
        probe_logger.close()

    assert "Completion #1: status 200" in main_log
    assert "target unreachable" in error_log
    assert "Completion #1" not in error_log


def test_quiet_mode_has_no_console_handler(tmp_path):
    probe_logger = setup_logging({"log_dir": str(tmp_path), "file_enabled": False}, quiet=True)
    try:
        stream_handlers = [
            h for h in probe_logger.logger.handlers if type(h) is logging.StreamHandler
        ]
        assert stream_handlers == []
        assert probe_logger.get_log_files() == {"main_log": None, "error_log": None}
    finally:
        probe_logger.close()


def test_setup_replaces_previous_handlers(tmp_path):
    first = setup_logging({"log_dir": str(tmp_path), "file_enabled": True})
    handler_count = len(first.logger.handlers)
    second = setup_logging({"log_dir": str(tmp_path), "file_enabled": True})
    try:
        assert len(second.logger.handlers) == handler_count
    finally:
        second.close()


def test_metrics_breakdown():
    metrics = ProbeMetrics()
    for status in (200, 200, 429, 503):
        metrics.record_status(status)
    metrics.record_transport_error()

    snapshot = metrics.snapshot()

    assert snapshot["status_counts"] == {200: 2, 429: 1, 503: 1}
    assert snapshot["total_responses"] == 4
    assert snapshot["transport_errors"] == 1
    assert metrics.format_breakdown() == "200=2, 429=1, 503=1"
    assert ProbeMetrics().format_breakdown() == "none"


@pytest.mark.timeout(10)
def test_dispatcher_logs_start_and_single_decision(source_factory, caplog):
    caplog.set_level(logging.INFO, logger="rate_limit_probe.pipeline.dispatcher")

    run(
        source_factory(50),
        ScriptedTransport(script=status_on(5, 429)),
        concurrency_limit=1,
        time_budget=60,
        max_requests=50,
    )

    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("Dispatch started: concurrency=1") for m in messages)
    assert [m for m in messages if m.startswith("Stop decision")] == [
        "Stop decision: rate_limited after 5 completed requests"
    ]
