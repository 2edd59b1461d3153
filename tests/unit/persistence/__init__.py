"""Shared builders and fault-injecting connectors for persistence tests."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Any

from serial_sqlite.domain.values import DataType
from serial_sqlite.persistence import Database


def make_database(tmp_path: Path, name: str = "test.sqlite", **kwargs: Any) -> Database:
    return Database(tmp_path / "db" / name, **kwargs)


def make_cities(database: Database) -> None:
    error = database.create_table(
        "Cities", {"Name": DataType.TEXT, "Population": DataType.INTEGER}
    )
    assert error is None


def count_rows(database: Database, table: str = "Cities") -> int:
    result = database.execute_query("SELECT COUNT(*) AS n FROM i?", [table])
    assert result.error is None
    value = result.rows[0]["n"].as_int()
    assert value is not None
    return value


def engine_error(message: str, code: int) -> sqlite3.OperationalError:
    exc = sqlite3.OperationalError(message)
    exc.sqlite_errorcode = code  # type: ignore[attr-defined]
    return exc


class FaultInjector:
    """Connector that fails selected statements with a chosen SQLite result code.

    Pass an instance as ``connector=`` to ``Database``/``ConnectionManager``. Every
    statement whose text matches a registered pattern raises instead of executing.
    """

    def __init__(self) -> None:
        self._statement_faults: list[tuple[re.Pattern[str], int]] = []
        self.open_error: int | None = None
        self.executed: list[str] = []

    def fail_statement(self, pattern: str, code: int) -> None:
        self._statement_faults.append((re.compile(pattern, re.IGNORECASE), code))

    def clear(self) -> None:
        self._statement_faults.clear()
        self.open_error = None

    def __call__(self, database: str, **kwargs: Any) -> sqlite3.Connection:
        if self.open_error is not None:
            raise engine_error("unable to open database file", self.open_error)
        injector = self

        class _FaultyConnection(sqlite3.Connection):
            def execute(self, sql: str, parameters: Any = (), /) -> sqlite3.Cursor:  # type: ignore[override]
                injector.executed.append(sql)
                for pattern, code in injector._statement_faults:
                    if pattern.search(sql):
                        raise engine_error(f"injected failure for {sql!r}", code)
                return super().execute(sql, parameters)

        return sqlite3.connect(database, factory=_FaultyConnection, **kwargs)
