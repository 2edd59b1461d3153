"""Ownership of the single SQLite handle and its connection-mode state machine."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from serial_sqlite.binding.codec import decode_cell, register_declared_type_converters
from serial_sqlite.constants import DEFAULT_BUSY_TIMEOUT_MS
from serial_sqlite.domain.errors import (
    SQLITE_MISUSE,
    ErrorCode,
    engine_error_code,
    log_failure,
)
from serial_sqlite.domain.values import AccessMode, CountResult, QueryResult, Row

_log = logging.getLogger(__name__)

Connector = Callable[..., sqlite3.Connection]


class ConnectionMode(StrEnum):
    CLOSED = "closed"
    DEFAULT_OPEN = "default_open"
    CUSTOM_OPEN = "custom_open"


@dataclass(slots=True)
class ConnectionState:
    handle: sqlite3.Connection | None = None
    mode: ConnectionMode = ConnectionMode.CLOSED
    access_mode: AccessMode | None = None
    transaction_active: bool = False
    savepoint_depth: int = 0

    @property
    def scope_owned(self) -> bool:
        """True while a transaction, savepoint or custom connection owns the handle."""

        return (
            self.transaction_active
            or self.savepoint_depth > 0
            or self.mode is ConnectionMode.CUSTOM_OPEN
        )


class ConnectionManager:
    """Open and close the database handle on behalf of every operation.

    ``open``/``close`` are no-ops while an enclosing scope owns the handle, so a unit
    of work can always bracket itself with them.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        connector: Connector = sqlite3.connect,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._connector = connector
        self._state = ConnectionState()
        self.opened_handles = 0
        self.closed_handles = 0
        register_declared_type_converters()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def open_handles(self) -> int:
        return self.opened_handles - self.closed_handles

    def open(self) -> int | None:
        if self._state.scope_owned or self._state.handle is not None:
            return None
        handle, error = self._connect(AccessMode.READ_WRITE_CREATE, operation="opening database")
        if handle is None:
            return error
        self._state.handle = handle
        self._state.mode = ConnectionMode.DEFAULT_OPEN
        return None

    def close(self) -> None:
        if self._state.scope_owned or self._state.handle is None:
            return
        self._close_handle(operation="closing database")

    def open_custom(self, access_mode: AccessMode) -> int | None:
        operation = "opening database with flags"
        state = self._state
        if state.transaction_active:
            return log_failure(_log, operation, ErrorCode.CUSTOM_OPEN_IN_TRANSACTION)
        if state.mode is ConnectionMode.CUSTOM_OPEN:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN)
        if state.savepoint_depth > 0:
            return log_failure(_log, operation, ErrorCode.CUSTOM_OPEN_IN_SAVEPOINT)
        if state.handle is not None:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN)
        handle, error = self._connect(AccessMode(access_mode), operation=operation)
        if handle is None:
            return error
        state.handle = handle
        state.mode = ConnectionMode.CUSTOM_OPEN
        state.access_mode = AccessMode(access_mode)
        return None

    def close_custom(self) -> int | None:
        operation = "closing database with flags"
        state = self._state
        if state.transaction_active:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CLOSE_IN_TRANSACTION)
        if state.savepoint_depth > 0:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CLOSE_IN_SAVEPOINT)
        if state.mode is not ConnectionMode.CUSTOM_OPEN:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CONNECTION_NOT_OPEN)
        return self._close_handle(operation=operation)

    def execute_change(
        self,
        sql: str,
        parameters: Sequence[object] = (),
        *,
        operation: str = "executing change",
    ) -> int | None:
        handle = self._state.handle
        if handle is None:
            return log_failure(
                _log, operation, SQLITE_MISUSE, "database is not open", statement=sql
            )
        try:
            handle.execute(sql, tuple(parameters))
        except sqlite3.Error as exc:
            return log_failure(_log, operation, engine_error_code(exc), str(exc), statement=sql)
        return None

    def execute_query(
        self,
        sql: str,
        parameters: Sequence[object] = (),
        *,
        operation: str = "executing query",
    ) -> QueryResult:
        handle = self._state.handle
        if handle is None:
            code = log_failure(
                _log, operation, SQLITE_MISUSE, "database is not open", statement=sql
            )
            return QueryResult([], code)
        try:
            cursor = handle.execute(sql, tuple(parameters))
            names = [column[0] for column in cursor.description or ()]
            rows = [
                Row((name, decode_cell(cell)) for name, cell in zip(names, record, strict=True))
                for record in cursor.fetchall()
            ]
        except sqlite3.Error as exc:
            code = log_failure(_log, operation, engine_error_code(exc), str(exc), statement=sql)
            return QueryResult([], code)
        return QueryResult(rows)

    def last_inserted_row_id(self) -> CountResult:
        return self._scalar("SELECT last_insert_rowid()", operation="reading last inserted row id")

    def number_of_rows_modified(self) -> CountResult:
        return self._scalar("SELECT changes()", operation="reading number of rows modified")

    def shutdown(self) -> int | None:
        """Close the handle whatever scope owns it and reset every mode flag."""

        state = self._state
        if state.scope_owned:
            _log.warning(
                "shutting down with an owned scope (transaction=%s, savepoints=%d, mode=%s)",
                state.transaction_active,
                state.savepoint_depth,
                state.mode,
                extra={"operation": "shutdown"},
            )
        state.transaction_active = False
        state.savepoint_depth = 0
        if state.handle is None:
            state.mode = ConnectionMode.CLOSED
            state.access_mode = None
            return None
        return self._close_handle(operation="shutdown")

    def _scalar(self, sql: str, *, operation: str) -> CountResult:
        result = self.execute_query(sql, operation=operation)
        if result.error is not None or not result.rows:
            return CountResult(0, result.error)
        value = next(iter(result.rows[0].values())).as_int()
        return CountResult(value or 0)

    def _connect(
        self, access_mode: AccessMode, *, operation: str
    ) -> tuple[sqlite3.Connection | None, int | None]:
        if access_mode is AccessMode.READ_WRITE_CREATE:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        uri = f"{self._path.resolve().as_uri()}?mode={access_mode.value}"
        try:
            handle = self._connector(
                uri,
                uri=True,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
                detect_types=sqlite3.PARSE_DECLTYPES,
            )
        except sqlite3.Error as exc:
            code = engine_error_code(exc)
            return None, log_failure(_log, operation, code, str(exc), path=str(self._path))
        self.opened_handles += 1
        _log.debug(
            "opened %s (mode=%s)", self._path, access_mode.value, extra={"operation": operation}
        )
        return handle, None

    def _close_handle(self, *, operation: str) -> int | None:
        state = self._state
        handle = state.handle
        error: int | None = None
        try:
            if handle is not None:
                handle.close()
        except sqlite3.Error as exc:
            error = log_failure(_log, operation, engine_error_code(exc), str(exc))
        finally:
            state.handle = None
            state.mode = ConnectionMode.CLOSED
            state.access_mode = None
            if handle is not None:
                self.closed_handles += 1
        return error


__all__ = [
    "ConnectionManager",
    "ConnectionMode",
    "ConnectionState",
    "Connector",
]
