"""Tests for logging setup and helpers."""

from __future__ import annotations

import sys

import pytest

from arch_provisioner import logging as logging_module


@pytest.fixture
def restore_logger():
    yield
    logging_module.logger.remove()
    logging_module.logger.add(sys.stderr)


def _capture():
    records: list[dict] = []
    logging_module.logger.remove()
    logging_module.logger.add(lambda message: records.append(message.record), level="TRACE")
    return records


def test_setup_logging_creates_log_files(tmp_path, restore_logger):
    """Test operations and structured sinks are written to the log dir."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(log_dir=log_dir)

    logging_module.get_logger(source="test").info("Provisioning test message")
    logging_module.logger.complete()

    assert "Provisioning test message" in (log_dir / "operations.log").read_text()
    assert "Provisioning test message" in (log_dir / "structured.jsonl").read_text()
    assert not (log_dir / "debug.log").exists()


def test_setup_logging_debug_adds_debug_sink(tmp_path, restore_logger):
    """Test debug mode writes DEBUG records to debug.log."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(debug=True, log_dir=log_dir)

    logging_module.get_logger(source="test").debug("Debug detail")
    logging_module.logger.complete()

    assert "Debug detail" in (log_dir / "debug.log").read_text()
    assert "Debug detail" not in (log_dir / "operations.log").read_text()


def test_get_logger_preserves_context_metadata(restore_logger):
    """Test bound logger keeps job_id, tags, and source metadata."""
    records = _capture()

    log = logging_module.get_logger(job_id="provision-123", tags=["mount"], source="mount")
    log.info("Context test")

    record = records[0]
    assert record["extra"]["job_id"] == "provision-123"
    assert record["extra"]["tags"] == ["mount"]
    assert record["extra"]["source"] == "mount"


def test_settle_filter_blocks_poll_logs_above_trace():
    """Test polling chatter is only shown at TRACE, or WARNING and above."""
    record = {
        "message": "Attempt 1/10",
        "extra": {"tags": ["block", "poll"]},
        "level": logging_module.logger.level("DEBUG"),
    }

    assert logging_module._should_log_settle(record) is False

    record["level"] = logging_module.logger.level("TRACE")
    assert logging_module._should_log_settle(record) is True

    record["level"] = logging_module.logger.level("WARNING")
    assert logging_module._should_log_settle(record) is True


def test_settle_filter_passes_other_records():
    record = {
        "message": "Formatting",
        "extra": {"tags": ["block"]},
        "level": logging_module.logger.level("INFO"),
    }

    assert logging_module._should_log_settle(record) is True


def test_operation_context_logs_start_and_completion(restore_logger):
    records = _capture()

    with logging_module.operation_context("mount", job_id="provision-1") as log:
        log.info("inside")

    messages = [record["message"] for record in records]
    assert messages == ["Mount started", "inside", "Mount completed"]
    assert records[-1]["extra"]["job_id"] == "provision-1"
    assert "duration_seconds" in records[-1]["extra"]


def test_operation_context_logs_failure_and_reraises(restore_logger):
    records = _capture()

    with pytest.raises(ValueError):
        with logging_module.operation_context("swap"):
            raise ValueError("bad {size}")

    failure = records[-1]
    assert failure["message"] == "Swap failed"
    assert failure["level"].name == "ERROR"
    assert failure["extra"]["error"] == "bad {size}"
    assert failure["extra"]["error_type"] == "ValueError"


def test_logger_factory_sources(restore_logger):
    records = _capture()

    logging_module.LoggerFactory.for_mount().info("m")
    logging_module.LoggerFactory.for_chroot().info("c")
    logging_module.LoggerFactory.for_provision("provision-abc").info("p")

    assert [record["extra"]["source"] for record in records] == ["mount", "chroot", "provision"]
    assert records[2]["extra"]["job_id"] == "provision-abc"


def test_new_run_id_format():
    run_id = logging_module.new_run_id()

    assert run_id.startswith("provision-")
    assert len(run_id) == len("provision-") + 8


def test_event_logger_resource_events(restore_logger):
    records = _capture()
    log = logging_module.LoggerFactory.for_mount()

    logging_module.EventLogger.log_resource_acquired(log, "mount", "/mnt/home", depth=2)
    logging_module.EventLogger.log_resource_released(log, "mount", "/mnt/home", was_present=False)
    logging_module.EventLogger.log_phase_transition(log, "mount", "swap")

    acquired, released, transition = records
    assert acquired["extra"]["event_type"] == "resource_acquired"
    assert acquired["extra"]["depth"] == 2
    assert released["message"] == "Released mount /mnt/home (already absent)"
    assert transition["extra"]["phase"] == "swap"
