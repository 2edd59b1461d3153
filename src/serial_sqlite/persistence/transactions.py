"""Exclusive transactions and nestable savepoints on the shared handle.

Both entry points must run inside a unit of work on the scheduler. The body runs
with the scheduler's ownership token held, so database calls made from it execute
inline against the same handle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from serial_sqlite.domain.errors import ErrorCode, log_failure
from serial_sqlite.persistence.connection import ConnectionManager, ConnectionMode
from serial_sqlite.persistence.scheduler import TaskScheduler

_log = logging.getLogger(__name__)

ScopeBody = Callable[[], object]


class TransactionCoordinator:
    def __init__(self, manager: ConnectionManager, scheduler: TaskScheduler) -> None:
        self._manager = manager
        self._scheduler = scheduler

    @property
    def in_transaction(self) -> bool:
        return self._manager.state.transaction_active

    @property
    def savepoint_depth(self) -> int:
        return self._manager.state.savepoint_depth

    def transaction(self, body: ScopeBody) -> int | None:
        """Run ``body`` inside ``BEGIN EXCLUSIVE``; commit on a truthy result, else roll back."""

        operation = "beginning transaction"
        state = self._manager.state
        if state.mode is ConnectionMode.CUSTOM_OPEN:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN)
        if state.savepoint_depth > 0:
            return log_failure(_log, operation, ErrorCode.TRANSACTION_IN_SAVEPOINT)
        if state.transaction_active:
            return log_failure(_log, operation, ErrorCode.TRANSACTION_IN_TRANSACTION)

        error = self._manager.open()
        if error is not None:
            return error
        error = self._manager.execute_change("BEGIN EXCLUSIVE", operation=operation)
        if error is not None:
            self._manager.close()
            return error

        state.transaction_active = True
        try:
            with self._scheduler.owned_scope("transaction"):
                commit = body()
        except BaseException:
            self._rollback_transaction()
            self._manager.close()
            raise

        if commit:
            error = self._manager.execute_change("COMMIT", operation="committing transaction")
            if error is not None:
                # The commit error is surfaced; the rollback result is only logged.
                self._rollback_transaction()
            state.transaction_active = False
        else:
            error = self._rollback_transaction()
        self._manager.close()
        return error

    def savepoint(self, body: ScopeBody) -> int | None:
        """Run ``body`` inside ``SAVEPOINT 'savepointN'``; release on a truthy result."""

        operation = "beginning savepoint"
        state = self._manager.state
        if state.mode is ConnectionMode.CUSTOM_OPEN:
            return log_failure(_log, operation, ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN)

        error = self._manager.open()
        if error is not None:
            return error
        name = _savepoint_name(state.savepoint_depth + 1)
        error = self._manager.execute_change(f"SAVEPOINT {name}", operation=operation)
        if error is not None:
            self._manager.close()
            return error

        state.savepoint_depth += 1
        try:
            with self._scheduler.owned_scope(f"savepoint {state.savepoint_depth}"):
                release = body()
        except BaseException:
            self._abort_savepoint(name)
            self._manager.close()
            raise

        if release:
            error = self._release_savepoint(name)
        else:
            error = self._abort_savepoint(name)
        self._manager.close()
        return error

    def _rollback_transaction(self) -> int | None:
        error = self._manager.execute_change("ROLLBACK", operation="rolling back transaction")
        self._manager.state.transaction_active = False
        return error

    def _abort_savepoint(self, name: str) -> int | None:
        error = self._manager.execute_change(
            f"ROLLBACK TO {name}", operation="rolling back savepoint"
        )
        if error is not None:
            # Release is skipped; the depth still drops by exactly one.
            self._manager.state.savepoint_depth -= 1
            return error
        return self._release_savepoint(name)

    def _release_savepoint(self, name: str) -> int | None:
        error = self._manager.execute_change(f"RELEASE {name}", operation="releasing savepoint")
        self._manager.state.savepoint_depth -= 1
        return error


def _savepoint_name(depth: int) -> str:
    return f"'savepoint{depth}'"


__all__ = ["ScopeBody", "TransactionCoordinator"]
