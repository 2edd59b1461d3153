"""
serial-sqlite — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structured JSON logging with SQL literal redaction, correlation metadata,
  and queue-backed shutdown.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation fields propagated onto the database worker thread.
- Failure diagnostics carry operation/code/detail under ``fields``.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from serial_sqlite.observability.logging import (
    LoggingConfig,
    correlation_scope,
    flush_logging,
    get_correlation_context,
    operation_scope,
    redact_sql_literals,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)
from serial_sqlite.persistence import Database

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"serial_sqlite.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_redact_sql_literals() -> None:
    assert redact_sql_literals("SELECT 'secret', 'it''s' FROM t") == "SELECT '***', '***' FROM t"
    assert redact_sql_literals("no literals here") == "no literals here"


def test_json_lines_redact_messages_and_fields(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(base_log_dir=tmp_path / "logs", logger_name=name, level="DEBUG")
    )
    logger = logging.getLogger(name)

    logger.error(
        "statement failed: %s",
        "INSERT INTO t VALUES ('hunter2')",
        extra={"operation": "executing change", "code": 19, "statement": "VALUES ('x')"},
    )
    shutdown_logging(handle)

    (event,) = _read_json_lines(handle.log_path)
    assert event["level"] == "ERROR"
    assert event["logger"] == name
    assert event["message"] == "statement failed: INSERT INTO t VALUES ('***')"
    assert event["fields"] == {
        "operation": "executing change",
        "code": 19,
        "statement": "VALUES ('***')",
    }
    assert str(event["timestamp"]).endswith("Z")


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(base_log_dir=tmp_path, logger_name=name, redact_sql_literals=False)
    )

    logging.getLogger(name).warning("kept 'literal'")
    shutdown_logging(handle)

    (event,) = _read_json_lines(handle.log_path)
    assert event["message"] == "kept 'literal'"


def test_correlation_scope_is_emitted_and_restored(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, logger_name=name))
    logger = logging.getLogger(name)

    with operation_scope("execute_query", database="app.sqlite"):
        assert get_correlation_context() == {"call": "execute_query", "database": "app.sqlite"}
        with correlation_scope(database=None):
            logger.info("inner")
        logger.info("outer")
    logger.info("after")
    shutdown_logging(handle)

    inner, outer, after = _read_json_lines(handle.log_path)
    assert inner["call"] == "execute_query" and "database" not in inner
    assert outer["call"] == "execute_query" and outer["database"] == "app.sqlite"
    assert "call" not in after
    assert get_correlation_context() == {}


def test_worker_thread_records_carry_the_callers_correlation(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(base_log_dir=tmp_path / "logs", logger_name="serial_sqlite")
    )
    try:
        with Database(tmp_path / "db" / "corr.sqlite") as db:
            assert db.execute_change("INSERT INTO missing VALUES ('pw')") == 1
    finally:
        shutdown_logging(handle)
        # Let later tests' caplog see package records again.
        logging.getLogger("serial_sqlite").propagate = True

    events = _read_json_lines(handle.log_path)
    failure = next(
        event
        for event in events
        if isinstance(event.get("fields"), dict)
        and event["fields"].get("operation") == "executing change"  # type: ignore[union-attr]
    )
    assert failure["call"] == "execute_change"
    assert failure["database"] == "corr.sqlite"
    assert failure["thread"] == "serial-sqlite-worker"
    fields = failure["fields"]
    assert isinstance(fields, dict)
    assert fields["code"] == 1
    assert fields["statement"] == "INSERT INTO missing VALUES ('***')"
    assert "pw" not in json.dumps(events)


def test_setup_logging_reads_observability_section(tmp_path: Path) -> None:
    name = _logger_name()
    logger = setup_logging(
        {"log_level": "WARNING", "log_dir": str(tmp_path / "obs"), "log_to_stdout": False},
        logger_name=name,
    )

    logger.info("dropped by level")
    logger.warning("kept")
    shutdown_logging()

    (event,) = _read_json_lines(tmp_path / "obs" / "serial_sqlite.jsonl")
    assert event["message"] == "kept"


def test_multithreaded_logging_produces_valid_lines(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, logger_name=name))
    logger = logging.getLogger(name)

    def emit(worker: int) -> None:
        for index in range(25):
            logger.info("worker %d line %d", worker, index)

    threads = [threading.Thread(target=emit, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert len(events) == 100
    assert handle.dropped_records == 0


def test_invalid_logging_config_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="queue_size"):
        setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, queue_size=0))
    with pytest.raises(ValueError, match="bare file name"):
        setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, log_filename="a/b.jsonl"))
    with pytest.raises(ValueError, match="unsupported logging level"):
        setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, level="LOUD"))


def test_flush_logging_drains_the_queue_without_stopping(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, logger_name=name))
    logger = logging.getLogger(name)

    logger.info("first")
    flush_logging(handle)
    assert [event["message"] for event in _read_json_lines(handle.log_path)] == ["first"]
    assert not handle.is_shutdown

    logger.info("second")
    shutdown_logging(handle)
    assert [event["message"] for event in _read_json_lines(handle.log_path)] == ["first", "second"]
