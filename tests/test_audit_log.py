"""
Tests for structlog configuration and the audit logger.
"""

import json
import logging

import pytest
import structlog

from vaultfactory.core.audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_logging,
)


@pytest.fixture
def json_logging():
    root = logging.getLogger()
    old_level = root.level
    configure_logging("INFO", "json")
    yield
    structlog.reset_defaults()
    root.setLevel(old_level)


def _records(log_dir):
    files = list(log_dir.glob("audit_*.log"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines() if line]


def test_event_written_to_daily_file(tmp_path, json_logging):
    audit = AuditLogger(tmp_path)
    try:
        event_id = audit.log_event(
            EventType.DATA_CREATED,
            EventSeverity.INFO,
            "Data item created",
            details={"data_id": "d1"},
            user_id="u1",
        )
    finally:
        audit.close()

    record = next(r for r in _records(tmp_path) if r.get("event_id") == event_id)
    assert record["event"] == "security_event"
    assert record["event_type"] == "data.created"
    assert record["severity"] == "info"
    assert record["user_id"] == "u1"
    assert record["details"] == {"data_id": "d1"}
    assert "timestamp" in record


def test_severity_maps_to_log_level(tmp_path, json_logging):
    audit = AuditLogger(tmp_path)
    try:
        audit.log_event(EventType.PARTIAL_WRITE, EventSeverity.CRITICAL, "drift")
        audit.log_event(EventType.DATA_ACCESS_DENIED, EventSeverity.ALERT, "denied")
    finally:
        audit.close()

    levels = {r["event_type"]: r["level"] for r in _records(tmp_path)}
    assert levels == {"store.partial_write": "error", "data.access.denied": "warning"}


def test_event_ids_are_unique(tmp_path, json_logging):
    audit = AuditLogger(tmp_path)
    try:
        ids = {audit.log_event(EventType.USER_LOGIN, EventSeverity.INFO, "login") for _ in range(5)}
    finally:
        audit.close()
    assert len(ids) == 5


def test_close_detaches_file(tmp_path):
    audit = AuditLogger(tmp_path)
    audit.close()
    handlers = logging.getLogger("vaultfactory.audit").handlers
    assert not any(str(tmp_path) in getattr(h, "baseFilename", "") for h in handlers)


def test_stdout_only_without_directory():
    audit = AuditLogger()
    assert audit.log_dir is None
    assert audit.log_event(EventType.SYSTEM_START, EventSeverity.INFO, "start")
    audit.close()
