"""Tests for JSONL logging."""

import json
from pathlib import Path

import pytest

from companion.logging import JSONLLogger, LogEntry, configure_logger, get_logger


@pytest.fixture
def logger(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path / "jsonl")


def read_entries(logger: JSONLLogger) -> list[dict]:
    return [json.loads(line) for line in logger.log_path.read_text().splitlines()]


def test_log_entry_to_dict():
    """LogEntry excludes None values and empty extras."""
    data = LogEntry(timestamp="2025-01-01T00:00:00Z", event="test").to_dict()

    assert data == {"timestamp": "2025-01-01T00:00:00Z", "event": "test"}


def test_log_writes_one_line_per_event(logger: JSONLLogger):
    logger.log("first", persona_id=1)
    logger.log("second", chat_id="42", note="hi")

    entries = read_entries(logger)
    assert [e["event"] for e in entries] == ["first", "second"]
    assert entries[1]["extra"] == {"note": "hi"}


def test_scheduled_event_names(logger: JSONLLogger):
    """Event transitions are logged as event_<status>."""
    logger.log_scheduled_event("deferred", 7, 1, new_time="2025-01-01T10:30:00+00:00")
    logger.log_scheduled_event("failed", 7, 1, error="boom")

    entries = read_entries(logger)
    assert [e["event"] for e in entries] == ["event_deferred", "event_failed"]
    assert entries[0]["event_id"] == 7
    assert entries[1]["error"] == "boom"


def test_memory_events(logger: JSONLLogger):
    logger.log_memory_reconciled(3, added=1, updated=2, removed=0)
    logger.log_memory_consolidated(3, updated=4, deleted=1)

    reconciled, consolidated = read_entries(logger)
    assert reconciled["event"] == "memory_reconciled"
    assert reconciled["extra"] == {"added": 1, "updated": 2, "removed": 0}
    assert consolidated["extra"] == {"updated": 4, "deleted": 1}


def test_rotation(tmp_path: Path):
    logger = JSONLLogger(log_dir=tmp_path, max_size_mb=0.0001)
    for i in range(20):
        logger.log("filler", index=i, padding="x" * 50)

    assert len(list(tmp_path.glob("events*.jsonl"))) >= 2


def test_configure_logger_replaces_global(tmp_path: Path):
    configured = configure_logger(tmp_path / "global")
    assert get_logger() is configured
    assert configured.log_dir == tmp_path / "global"
