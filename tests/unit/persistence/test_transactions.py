"""
serial-sqlite — unit tests for transactions and savepoints

File: tests/unit/persistence/test_transactions.py

Purpose
- Commit/rollback outcomes of exclusive transactions and nested savepoints.
- Mutual exclusion between transactions, savepoints and custom connections.
- Failure paths: commit failure, savepoint rollback failure, body exceptions.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from serial_sqlite.domain.errors import ErrorCode
from serial_sqlite.domain.values import AccessMode
from serial_sqlite.persistence import Session

from . import FaultInjector, count_rows, make_cities, make_database

_BUSY = 5
_ERROR = 1


def test_rolled_back_transaction_leaves_row_count_unchanged(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)
        assert db.execute_change("INSERT INTO Cities (Name) VALUES (?)", ["Oslo"]) is None

        def body(session: Session) -> bool:
            assert session.execute_change("INSERT INTO Cities (Name) VALUES (?)", ["Rome"]) is None
            assert count_rows(db) == 2
            return False

        assert db.transaction(body) is None
        assert count_rows(db) == 1
        assert not db.in_transaction
        assert db.connection_manager.open_handles == 0


def test_committed_transaction_persists_rows(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)

        def body(session: Session) -> bool:
            for name in ("Oslo", "Rome", "Lima"):
                assert session.execute_change("INSERT INTO Cities (Name) VALUES (?)", [name]) is None
            return True

        assert db.transaction(body) is None
        assert count_rows(db) == 3


def test_transaction_body_sees_its_own_handle(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)
        ids: list[int] = []

        def body(session: Session) -> bool:
            assert session.active
            assert db.in_transaction
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Oslo')")
            ids.append(session.last_inserted_row_id().value)
            ids.append(db.number_of_rows_modified().value)
            return True

        assert db.transaction(body) is None
        assert ids == [1, 1]


def test_nested_transaction_is_rejected(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        nested: list[int | None] = []

        def body(session: Session) -> bool:
            nested.append(session.transaction(lambda _: True))
            return True

        assert db.transaction(body) is None
        assert nested == [ErrorCode.TRANSACTION_IN_TRANSACTION]


def test_transaction_inside_savepoint_is_rejected(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        nested: list[int | None] = []

        def body(session: Session) -> bool:
            nested.append(session.transaction(lambda _: True))
            return True

        assert db.savepoint(body) is None
        assert nested == [ErrorCode.TRANSACTION_IN_SAVEPOINT]
        assert db.savepoint_depth == 0


def test_savepoint_inside_transaction_is_allowed(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)

        def inner(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Inner')")
            return False

        def outer(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Outer')")
            assert session.savepoint(inner) is None
            return True

        assert db.transaction(outer) is None
        result = db.execute_query("SELECT Name FROM Cities")
        assert [row["Name"].as_string() for row in result.rows] == ["Outer"]


@pytest.mark.parametrize("depth", [1, 2, 5])
def test_nested_savepoints_return_depth_to_zero(tmp_path: Path, depth: int) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)
        depths: list[int] = []

        def nest(level: int) -> object:
            def body(session: Session) -> bool:
                depths.append(db.savepoint_depth)
                session.execute_change("INSERT INTO Cities (Name) VALUES (?)", [f"level {level}"])
                if level < depth:
                    assert session.savepoint(nest(level + 1)) is None
                # Alternate release and rollback.
                return level % 2 == 1

            return body

        assert db.savepoint(nest(1)) is None  # type: ignore[arg-type]
        assert depths == list(range(1, depth + 1))
        assert db.savepoint_depth == 0
        assert db.connection_manager.open_handles == 0


def test_released_savepoint_keeps_rows_and_rolled_back_one_discards_them(
    tmp_path: Path,
) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)

        def keep(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Keep')")
            return True

        def drop(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Drop')")
            return False

        assert db.savepoint(keep) is None
        assert db.savepoint(drop) is None

        result = db.execute_query("SELECT Name FROM Cities")
        assert [row["Name"].as_string() for row in result.rows] == ["Keep"]


def test_scopes_are_rejected_inside_a_custom_connection(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        codes: list[int | None] = []

        def body(session: Session) -> None:
            codes.append(session.transaction(lambda _: True))
            codes.append(session.savepoint(lambda _: True))
            codes.append(db.execute_with_connection(AccessMode.READ_WRITE, lambda _: None))

        assert db.execute_with_connection(AccessMode.READ_WRITE_CREATE, body) is None
        assert codes == [ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN] * 3


def test_custom_connection_rejected_inside_transaction_and_savepoint(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        codes: list[int | None] = []

        def body(session: Session) -> bool:
            codes.append(db.execute_with_connection(AccessMode.READ_WRITE, lambda _: None))
            return True

        assert db.transaction(body) is None
        assert db.savepoint(body) is None
        assert codes == [
            ErrorCode.CUSTOM_OPEN_IN_TRANSACTION,
            ErrorCode.CUSTOM_OPEN_IN_SAVEPOINT,
        ]


def test_begin_failure_is_returned_and_closes_the_handle(tmp_path: Path) -> None:
    injector = FaultInjector()
    with make_database(tmp_path, connector=injector) as db:
        injector.fail_statement(r"^BEGIN", _BUSY)
        called: list[bool] = []

        assert db.transaction(lambda _: called.append(True) or True) == _BUSY
        assert called == []
        assert not db.in_transaction
        assert db.connection_manager.open_handles == 0


def test_commit_failure_rolls_back_and_surfaces_commit_error(tmp_path: Path) -> None:
    injector = FaultInjector()
    with make_database(tmp_path, connector=injector) as db:
        make_cities(db)
        injector.fail_statement(r"^COMMIT", _BUSY)

        def body(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Lost')")
            return True

        assert db.transaction(body) == _BUSY
        assert "ROLLBACK" in injector.executed
        assert not db.in_transaction
        injector.clear()
        assert count_rows(db) == 0


def test_rollback_failure_is_returned(tmp_path: Path) -> None:
    injector = FaultInjector()
    with make_database(tmp_path, connector=injector) as db:
        injector.fail_statement(r"^ROLLBACK$", _ERROR)

        assert db.transaction(lambda _: False) == _ERROR
        assert not db.in_transaction
        assert db.connection_manager.open_handles == 0


def test_failed_savepoint_rollback_skips_release_and_decrements_once(tmp_path: Path) -> None:
    injector = FaultInjector()
    with make_database(tmp_path, connector=injector) as db:
        injector.fail_statement(r"^ROLLBACK TO", _ERROR)
        observed: list[int] = []

        def inner(_: Session) -> bool:
            return False

        def outer(session: Session) -> bool:
            assert session.savepoint(inner) == _ERROR
            observed.append(db.savepoint_depth)
            return True

        assert db.savepoint(outer) is None
        assert observed == [1]
        assert db.savepoint_depth == 0
        assert not any(sql == "RELEASE 'savepoint2'" for sql in injector.executed)
        assert "RELEASE 'savepoint1'" in injector.executed


def test_body_exception_rolls_back_and_propagates(tmp_path: Path) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)

        def body(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Ghost')")
            raise LookupError("body failed")

        with pytest.raises(LookupError, match="body failed"):
            db.transaction(body)
        with pytest.raises(LookupError, match="body failed"):
            db.savepoint(body)

        assert not db.in_transaction
        assert db.savepoint_depth == 0
        assert count_rows(db) == 0
        assert db.connection_manager.open_handles == 0


class _Halt(BaseException):
    pass


@pytest.mark.parametrize("raised", [SystemExit(3), _Halt()], ids=["system-exit", "custom"])
def test_base_exception_from_a_body_unwinds_every_scope(
    tmp_path: Path, raised: BaseException
) -> None:
    with make_database(tmp_path) as db:
        make_cities(db)

        def body(session: Session) -> bool:
            session.execute_change("INSERT INTO Cities (Name) VALUES ('Ghost')")
            raise raised

        with pytest.raises(type(raised)):
            db.transaction(body)
        with pytest.raises(type(raised)):
            db.savepoint(body)
        with pytest.raises(type(raised)):
            db.execute_with_connection(AccessMode.READ_WRITE, body)

        assert not db.in_transaction
        assert db.savepoint_depth == 0
        assert count_rows(db) == 1
        assert db.connection_manager.open_handles == 0
        assert db.execute_change("INSERT INTO Cities (Name) VALUES ('Oslo')") is None
        assert count_rows(db) == 2
