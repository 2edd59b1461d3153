"""Serialization of database work with reentrant bypass for owned scopes."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from serial_sqlite.utils.concurrency import SerialExecutor, hold_token, holds_token

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

T = TypeVar("T")

_log = logging.getLogger(__name__)


class TaskScheduler:
    """Route every unit of work for one database through a single serial worker.

    A unit submitted while the current context owns a transaction, savepoint or
    custom-connection scope of *this* scheduler runs inline on the worker thread;
    re-queuing it would wait on the body that submitted it. All other units are
    queued in FIFO order and the caller blocks until the unit returns.
    """

    def __init__(self, name: str = "serial-sqlite") -> None:
        self._executor = SerialExecutor(name)

    @property
    def pending(self) -> int:
        return self._executor.pending

    @property
    def closed(self) -> bool:
        return self._executor.closed

    def owns_current_context(self) -> bool:
        return self._executor.is_worker_thread() and holds_token(self)

    def run(self, unit: Callable[[], T]) -> T:
        if self.owns_current_context():
            return unit()
        if self._executor.is_worker_thread():
            _log.error(
                "unit of work submitted from the worker outside an owned scope",
                extra={"operation": "schedule", "detail": self._executor.name},
            )
        return self._executor.run(unit)

    @contextmanager
    def owned_scope(self, label: str) -> Iterator[None]:
        """Mark the current context as owner of a connection scope for nested units."""

        with hold_token(self, label):
            _log.debug("entered owned scope %s", label, extra={"operation": label})
            try:
                yield
            finally:
                _log.debug("left owned scope %s", label, extra={"operation": label})

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["TaskScheduler"]
