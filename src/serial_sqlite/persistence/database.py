"""Public entry point: every operation serialized through one worker per database.

Each public call wraps its work as a unit that opens the connection, runs the
statement(s) and closes the connection again. Units are queued on the database's
``TaskScheduler``; a unit issued from inside a transaction, savepoint or
custom-connection body runs inline against the handle that scope already owns.

Failures are reported as optional integer codes (``None`` means success). The
only exceptions that escape are those raised by caller-supplied bodies, which
propagate after the scope has been cleaned up.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from serial_sqlite.binding.binder import BindingMode, BindResult, bind
from serial_sqlite.binding.codec import escape_identifier, escape_value
from serial_sqlite.config.loader import database_path_from_config, load_config
from serial_sqlite.constants import (
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_DATABASE_DIRECTORY,
    DEFAULT_DATABASE_FILENAME,
    WORKER_THREAD_NAME,
)
from serial_sqlite.domain.errors import ErrorCode, error_message_for_code, log_failure
from serial_sqlite.domain.values import (
    AccessMode,
    CountResult,
    DataType,
    NamesResult,
    QueryResult,
)
from serial_sqlite.observability.logging import operation_scope
from serial_sqlite.persistence.connection import ConnectionManager, Connector
from serial_sqlite.persistence.scheduler import TaskScheduler
from serial_sqlite.persistence.transactions import TransactionCoordinator

if TYPE_CHECKING:
    from types import TracebackType

R = TypeVar("R")

_log = logging.getLogger(__name__)

SessionBody = Callable[["Session"], object]


def default_database_path() -> Path:
    """``~/Documents/SerialSQLite.sqlite`` for the current user."""

    return Path(DEFAULT_DATABASE_DIRECTORY).expanduser() / DEFAULT_DATABASE_FILENAME


class Session:
    """Handle passed to transaction, savepoint and custom-connection bodies.

    Calls made through a session (or directly on the database) from inside the body
    run inline on the connection the scope owns.
    """

    __slots__ = ("_database", "_scope")

    def __init__(self, database: Database, scope: str) -> None:
        self._database = database
        self._scope = scope

    @property
    def database(self) -> Database:
        return self._database

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def active(self) -> bool:
        """True while the scope that created this session is still running."""

        return self._database.scheduler.owns_current_context()

    def execute_change(self, sql: str, args: Sequence[object] | None = None) -> int | None:
        return self._database.execute_change(sql, args)

    def execute_multiple_changes(self, sql_list: Iterable[str]) -> int | None:
        return self._database.execute_multiple_changes(sql_list)

    def execute_query(self, sql: str, args: Sequence[object] | None = None) -> QueryResult:
        return self._database.execute_query(sql, args)

    def savepoint(self, body: SessionBody) -> int | None:
        return self._database.savepoint(body)

    def transaction(self, body: SessionBody) -> int | None:
        return self._database.transaction(body)

    def last_inserted_row_id(self) -> CountResult:
        return self._database.last_inserted_row_id()

    def number_of_rows_modified(self) -> CountResult:
        return self._database.number_of_rows_modified()


class Database:
    """A SQLite database file accessed through one serial worker."""

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        binding_mode: BindingMode | str = BindingMode.TEXTUAL,
        connector: Connector = sqlite3.connect,
        worker_name: str = WORKER_THREAD_NAME,
    ) -> None:
        self._path = Path(path).expanduser() if path is not None else default_database_path()
        self._binding_mode = BindingMode(binding_mode)
        self._manager = ConnectionManager(
            self._path, busy_timeout_ms=busy_timeout_ms, connector=connector
        )
        self._scheduler = TaskScheduler(worker_name)
        self._transactions = TransactionCoordinator(self._manager, self._scheduler)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any] | None = None,
        *,
        connector: Connector = sqlite3.connect,
    ) -> Database:
        """Build a database from an effective config (``load_config()`` when omitted)."""

        effective = load_config() if config is None else config
        return cls(
            database_path_from_config(effective),
            busy_timeout_ms=int(effective["database"]["busy_timeout_ms"]),
            binding_mode=effective["binding"]["mode"],
            connector=connector,
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def database_path(self) -> str:
        return str(self._path)

    @property
    def binding_mode(self) -> BindingMode:
        return self._binding_mode

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._manager

    @property
    def in_transaction(self) -> bool:
        return self._transactions.in_transaction

    @property
    def savepoint_depth(self) -> int:
        return self._transactions.savepoint_depth

    @property
    def closed(self) -> bool:
        return self._scheduler.closed

    def __enter__(self) -> Database:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        del exc_type, exc, tb
        self.close()

    def close(self) -> None:
        """Release the handle on the worker and stop the worker thread."""

        if self._scheduler.closed:
            return
        self._run("close", self._manager.shutdown)
        self._scheduler.shutdown()

    # Statements

    def execute_change(self, sql: str, args: Sequence[object] | None = None) -> int | None:
        """Run a non-query statement, binding ``args`` to its ``?``/``i?`` placeholders."""

        def unit() -> int | None:
            bound = self._bind(sql, args)
            if bound.error is not None:
                return bound.error
            return self._manager.execute_change(bound.sql, bound.parameters)

        return self._run("execute_change", lambda: self._connected(unit, _error_code))

    def execute_multiple_changes(self, sql_list: Iterable[str]) -> int | None:
        """Run each statement in order, stopping at the first failure."""

        statements = list(sql_list)

        def unit() -> int | None:
            for index, sql in enumerate(statements):
                error = self._manager.execute_change(sql)
                if error is not None:
                    return log_failure(
                        _log,
                        "executing multiple changes",
                        error,
                        f"statement {index}: {sql}",
                        statement_index=index,
                    )
            return None

        return self._run("execute_multiple_changes", lambda: self._connected(unit, _error_code))

    def execute_query(self, sql: str, args: Sequence[object] | None = None) -> QueryResult:
        """Run a query and return detached rows, or an empty list with the error code."""

        def unit() -> QueryResult:
            bound = self._bind(sql, args)
            if bound.error is not None:
                return QueryResult([], bound.error)
            return self._manager.execute_query(bound.sql, bound.parameters)

        return self._run("execute_query", lambda: self._connected(unit, _query_error))

    # Scopes

    def execute_with_connection(
        self, access_mode: AccessMode | str, body: SessionBody
    ) -> int | None:
        """Run ``body`` on a dedicated connection opened with ``access_mode``."""

        mode = AccessMode(access_mode)

        def unit() -> int | None:
            error = self._manager.open_custom(mode)
            if error is not None:
                return error
            try:
                with self._scheduler.owned_scope("custom connection"):
                    body(Session(self, "custom connection"))
            except BaseException:
                self._manager.close_custom()
                raise
            return self._manager.close_custom()

        return self._run("execute_with_connection", unit)

    def transaction(self, body: SessionBody) -> int | None:
        """Run ``body`` in an exclusive transaction; commit if it returns truthy."""

        session = Session(self, "transaction")
        return self._run(
            "transaction", lambda: self._transactions.transaction(lambda: body(session))
        )

    def savepoint(self, body: SessionBody) -> int | None:
        """Run ``body`` in a nestable savepoint; release if it returns truthy."""

        session = Session(self, "savepoint")
        return self._run("savepoint", lambda: self._transactions.savepoint(lambda: body(session)))

    # Schema helpers

    def create_table(self, name: str, columns: Mapping[str, DataType | str]) -> int | None:
        definitions = ["ID INTEGER PRIMARY KEY AUTOINCREMENT"]
        definitions.extend(
            f"{escape_identifier(column)} {DataType(kind).sql}" for column, kind in columns.items()
        )
        sql = f"CREATE TABLE {escape_identifier(name)} ({', '.join(definitions)})"
        return self.execute_change(sql)

    def delete_table(self, name: str) -> int | None:
        return self.execute_change(f"DROP TABLE {escape_identifier(name)}")

    def existing_tables(self) -> NamesResult:
        return self._names(
            "SELECT name FROM sqlite_master WHERE type = 'table'",
            (),
            call="existing_tables",
            unreadable=ErrorCode.TABLE_NAMES_UNREADABLE,
        )

    def create_index(
        self,
        name: str,
        columns: Sequence[str],
        table: str,
        unique: bool = False,
    ) -> int | None:
        if not columns:
            return log_failure(_log, "creating index", ErrorCode.INDEX_REQUIRES_COLUMNS)
        kind = "UNIQUE INDEX" if unique else "INDEX"
        column_list = ", ".join(escape_identifier(column) for column in columns)
        return self.execute_change(
            f"CREATE {kind} {escape_identifier(name)} ON {escape_identifier(table)} ({column_list})"
        )

    def remove_index(self, name: str) -> int | None:
        return self.execute_change(f"DROP INDEX {escape_identifier(name)}")

    def existing_indexes(self) -> NamesResult:
        return self._names(
            "SELECT name FROM sqlite_master WHERE type = 'index'",
            (),
            call="existing_indexes",
            unreadable=ErrorCode.INDEX_NAMES_UNREADABLE,
        )

    def existing_indexes_for_table(self, table: str) -> NamesResult:
        return self._names(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ?",
            (table,),
            call="existing_indexes_for_table",
            unreadable=ErrorCode.INDEX_NAMES_UNREADABLE,
        )

    # Connection metadata

    def last_inserted_row_id(self) -> CountResult:
        """Row id of the most recent insert on the current handle.

        Outside a transaction, savepoint or custom connection each call opens a fresh
        handle, so the value is only meaningful from inside such a scope.
        """

        return self._run(
            "last_inserted_row_id",
            lambda: self._connected(self._manager.last_inserted_row_id, _count_error),
        )

    def number_of_rows_modified(self) -> CountResult:
        return self._run(
            "number_of_rows_modified",
            lambda: self._connected(self._manager.number_of_rows_modified, _count_error),
        )

    # Pure helpers

    @staticmethod
    def escape_value(value: object) -> str:
        return escape_value(value)

    @staticmethod
    def escape_identifier(name: str) -> str:
        return escape_identifier(name)

    @staticmethod
    def error_message_for_code(code: int) -> str:
        return error_message_for_code(code)

    def _run(self, call: str, unit: Callable[[], R]) -> R:
        with operation_scope(call, database=self._path.name):
            return self._scheduler.run(unit)

    def _connected(self, work: Callable[[], R], on_open_error: Callable[[int], R]) -> R:
        error = self._manager.open()
        if error is not None:
            return on_open_error(error)
        try:
            return work()
        finally:
            self._manager.close()

    def _bind(self, sql: str, args: Sequence[object] | None) -> BindResult:
        if args is None:
            return BindResult(sql)
        return bind(sql, args, mode=self._binding_mode)

    def _names(
        self,
        sql: str,
        parameters: Sequence[object],
        *,
        call: str,
        unreadable: ErrorCode,
    ) -> NamesResult:
        def unit() -> NamesResult:
            result = self._manager.execute_query(sql, parameters)
            if result.error is not None:
                return NamesResult([], result.error)
            names: list[str] = []
            for row in result.rows:
                column = row.get("name")
                name = column.as_string() if column is not None else None
                if name is None:
                    return NamesResult(names, log_failure(_log, call, unreadable))
                names.append(name)
            return NamesResult(names)

        return self._run(call, lambda: self._connected(unit, _names_error))


def _error_code(code: int) -> int | None:
    return code


def _query_error(code: int) -> QueryResult:
    return QueryResult([], code)


def _names_error(code: int) -> NamesResult:
    return NamesResult([], code)


def _count_error(code: int) -> CountResult:
    return CountResult(0, code)


__all__ = ["Database", "Session", "SessionBody", "default_database_path"]
