"""Error-code messages and engine exception mapping."""

from __future__ import annotations

import logging
import sqlite3

import pytest

from serial_sqlite.domain.errors import (
    ErrorCode,
    engine_error_code,
    error_message_for_code,
    log_failure,
)


def test_every_library_code_has_a_message() -> None:
    for code in ErrorCode:
        assert error_message_for_code(code) != "Unknown error"


def test_engine_and_unknown_messages() -> None:
    assert error_message_for_code(5) == "The database file is locked"
    assert error_message_for_code(-1) == "No error"
    assert error_message_for_code(350) == "Unknown error"


def test_engine_error_code_uses_primary_result_code() -> None:
    connection = sqlite3.connect(":memory:")
    try:
        connection.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        connection.execute("INSERT INTO t VALUES (1)")
        with pytest.raises(sqlite3.IntegrityError) as excinfo:
            connection.execute("INSERT INTO t VALUES (1)")
    finally:
        connection.close()

    assert engine_error_code(excinfo.value) == 19


def test_engine_error_code_fallbacks() -> None:
    assert engine_error_code(sqlite3.ProgrammingError("Incorrect number of bindings supplied")) == 25
    assert engine_error_code(sqlite3.ProgrammingError("Cannot operate on a closed database.")) == 21
    assert engine_error_code(sqlite3.OperationalError("no code attached")) == 1


def test_log_failure_emits_structured_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("serial_sqlite.tests.errors")
    caplog.set_level(logging.ERROR, logger=logger.name)

    code = log_failure(logger, "creating index", ErrorCode.INDEX_REQUIRES_COLUMNS, "no columns")

    assert code == 401
    (record,) = caplog.records
    assert record.getMessage() == (
        "creating index failed with code 401 (At least one column name must be provided): no columns"
    )
    assert record.operation == "creating index"  # type: ignore[attr-defined]
    assert record.code == 401  # type: ignore[attr-defined]
    assert record.detail == "no columns"  # type: ignore[attr-defined]
