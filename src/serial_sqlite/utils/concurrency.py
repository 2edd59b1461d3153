"""Thread-based serial execution and context-scoped ownership tokens."""

from __future__ import annotations

import contextvars
import logging
import queue
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

T = TypeVar("T")

_log = logging.getLogger(__name__)

_OWNERSHIP: contextvars.ContextVar[tuple[OwnershipToken, ...]] = contextvars.ContextVar(
    "serial_sqlite_ownership", default=()
)


class ExecutorClosedError(RuntimeError):
    """Raised when work is submitted to an executor that has been shut down."""


@dataclass(frozen=True, slots=True)
class OwnershipToken:
    """Marks the current context as owning a scope opened by ``issuer``."""

    issuer: object = field(compare=False)
    label: str

    def issued_by(self, issuer: object) -> bool:
        return self.issuer is issuer


def current_tokens() -> tuple[OwnershipToken, ...]:
    return _OWNERSHIP.get()


def holds_token(issuer: object) -> bool:
    """Return ``True`` when the current context holds a token issued by ``issuer``."""

    return any(token.issued_by(issuer) for token in _OWNERSHIP.get())


@contextmanager
def hold_token(issuer: object, label: str) -> Iterator[OwnershipToken]:
    token = OwnershipToken(issuer, label)
    reset = _OWNERSHIP.set((*_OWNERSHIP.get(), token))
    try:
        yield token
    finally:
        _OWNERSHIP.reset(reset)


@dataclass(slots=True)
class _WorkItem(Generic[T]):
    future: Future[T]
    context: contextvars.Context
    fn: Callable[[], T]


class SerialExecutor:
    """Run submitted callables one at a time, in FIFO order, on a single daemon thread.

    Each callable runs inside a copy of the submitter's ``contextvars`` context, so
    correlation fields and ownership tokens set by the caller are visible to it.
    """

    def __init__(self, name: str = "serial-sqlite") -> None:
        self._name = name
        self._queue: queue.Queue[_WorkItem[object] | None] = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()

    @property
    def name(self) -> str:
        return self._name

    @property
    def pending(self) -> int:
        """Number of submitted callables that have not started yet."""

        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    def is_worker_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        future: Future[T] = Future()
        with self._lock:
            if self._closed:
                raise ExecutorClosedError(f"executor {self._name!r} is shut down")
            item = _WorkItem(future, contextvars.copy_context(), fn)
            self._queue.put(item)  # type: ignore[arg-type]
        return future

    def run(self, fn: Callable[[], T]) -> T:
        """Submit ``fn`` and block until it finishes, re-raising its exception if any."""

        if self.is_worker_thread():
            # Queuing behind the running item would never complete.
            raise RuntimeError(f"executor {self._name!r} cannot wait on itself")
        return self.submit(fn).result()

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)
        if wait and not self.is_worker_thread():
            self._thread.join()

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                if not item.future.set_running_or_notify_cancel():
                    continue
                try:
                    result = item.context.run(item.fn)
                except BaseException as exc:
                    # Settled on the future and re-raised in the waiting caller.
                    item.future.set_exception(exc)
                else:
                    item.future.set_result(result)
            finally:
                self._queue.task_done()


__all__ = [
    "ExecutorClosedError",
    "OwnershipToken",
    "SerialExecutor",
    "current_tokens",
    "hold_token",
    "holds_token",
]
