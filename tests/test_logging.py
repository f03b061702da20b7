"""Tests for logging setup and helpers."""

from __future__ import annotations

import json

import pytest

from instance_store import logging as logging_module


@pytest.fixture
def records():
    logging_module.logger.remove()
    captured: list[dict] = []

    def sink(message):
        captured.append(message.record)

    logging_module.logger.add(sink, level="TRACE", enqueue=False)
    return captured


def test_setup_logging_writes_file_sinks(tmp_path):
    """Test file sinks are only created when a log directory is given."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(log_dir=log_dir)

    log = logging_module.get_logger(source="test", tags=["unit"])
    log.debug("Debug message")
    log.info("Info message")
    logging_module.logger.complete()
    logging_module.logger.remove()

    text = (log_dir / "provisioner.log").read_text()
    assert "Info message" in text
    assert "Debug message" not in text

    lines = (log_dir / "structured.jsonl").read_text().splitlines()
    assert [json.loads(line)["record"]["message"] for line in lines] == ["Info message"]


def test_setup_logging_reads_log_dir_from_env(tmp_path, monkeypatch):
    """Test CCISP_LOG_DIR enables file sinks."""
    monkeypatch.setenv("CCISP_LOG_DIR", str(tmp_path / "env-logs"))
    logging_module.setup_logging()

    logging_module.get_logger(source="test").info("From env")
    logging_module.logger.remove()

    assert "From env" in (tmp_path / "env-logs" / "provisioner.log").read_text()


def test_setup_logging_without_log_dir_creates_no_files(tmp_path, monkeypatch):
    monkeypatch.delenv("CCISP_LOG_DIR", raising=False)
    monkeypatch.chdir(tmp_path)

    logging_module.setup_logging(debug=True)
    logging_module.logger.remove()

    assert list(tmp_path.iterdir()) == []


def test_get_logger_preserves_context_metadata(records):
    """Test bound logger keeps job_id, tags, and source metadata."""
    log = logging_module.get_logger(job_id="provision-123", tags=["lvm"], source="lvm")
    log.info("Context test")

    assert records
    record = records[0]
    assert record["extra"]["job_id"] == "provision-123"
    assert record["extra"]["tags"] == ["lvm"]
    assert record["extra"]["source"] == "lvm"


def test_logger_factory_sources(records):
    logging_module.LoggerFactory.for_volume().info("volume")
    logging_module.LoggerFactory.for_mount().info("mount")

    assert [r["extra"]["source"] for r in records] == ["lvm", "mount"]
    assert "systemd" in records[1]["extra"]["tags"]


class TestOperationContext:
    def test_success(self, records):
        with logging_module.operation_context("provision", mountpoint="/mnt") as log:
            log.info("inside")

        messages = [r["message"] for r in records]
        assert messages == ["Provision started", "inside", "Provision completed"]
        assert records[-1]["level"].name == "SUCCESS"
        assert records[1]["extra"]["job_id"].startswith("provision-")

    def test_benign_exception_is_info_and_reraised(self, records):
        with pytest.raises(LookupError):
            with logging_module.operation_context("provision", benign=(LookupError,)):
                raise LookupError("nothing to do")

        assert records[-1]["level"].name == "INFO"
        assert records[-1]["message"] == "Provision stopped early: nothing to do"

    def test_failure_is_error_and_reraised(self, records):
        with pytest.raises(RuntimeError):
            with logging_module.operation_context("provision", benign=(LookupError,)):
                raise RuntimeError("mkfs failed")

        assert records[-1]["level"].name == "ERROR"
        assert records[-1]["extra"]["error"] == "mkfs failed"
        assert records[-1]["extra"]["error_type"] == "RuntimeError"


class TestEventLogger:
    def test_log_command(self, records):
        log = logging_module.LoggerFactory.for_system()
        logging_module.EventLogger.log_command(log, ["lvm", "pvcreate", "/dev/sdb"], 0)

        record = records[0]
        assert record["level"].name == "DEBUG"
        assert record["message"] == "Command completed with return code 0: lvm pvcreate /dev/sdb"
        assert record["extra"]["event_type"] == "command"
        assert record["extra"]["command"] == ["lvm", "pvcreate", "/dev/sdb"]

    def test_log_directory_redirected(self, records):
        log = logging_module.LoggerFactory.for_migrate()
        logging_module.EventLogger.log_directory_redirected(
            log, "/var/lib/containers", "/var/mnt/instance-storage/containers"
        )

        record = records[0]
        assert record["message"] == "Set up /var/lib/containers to use instance storage"
        assert record["extra"]["target"] == "/var/mnt/instance-storage/containers"
