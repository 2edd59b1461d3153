"""JSON-lines logging for database calls.

Records are handed to a bounded queue on the emitting thread and written by a
``QueueListener`` thread, so the serial worker never blocks on log I/O. Each line
carries the correlation fields of the public call that produced it (``call`` and
``database``), the logging thread name and any ``extra=`` fields under ``fields``.
Single-quoted SQL literals are masked as ``'***'`` unless redaction is disabled.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

JSONValue = str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

PACKAGE_LOGGER: Final[str] = "serial_sqlite"
LOG_FILENAME: Final[str] = "serial_sqlite.jsonl"

_MASK: Final[str] = "'***'"
_QUOTED_LITERAL: Final[re.Pattern[str]] = re.compile(r"'(?:[^']|'')*'")

# Attributes every LogRecord has; anything else on a record came from ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.makeLogRecord({}))
) | {"message", "asctime", "taskName"}

_CORRELATION_FIELDS: Final[tuple[str, ...]] = ("call", "database")
_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "serial_sqlite_correlation", default={}
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    base_log_dir: Path | str = Path("logs")
    logger_name: str = PACKAGE_LOGGER
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redact_sql_literals: bool = True
    redactor: LogRedactor | None = None


def redact_sql_literals(text: str) -> str:
    """Replace every single-quoted SQL literal in ``text`` with ``'***'``."""

    return _QUOTED_LITERAL.sub(_MASK, text)


def _redact_deep(value: JSONValue) -> JSONValue:
    if isinstance(value, str):
        return redact_sql_literals(value)
    if isinstance(value, list):
        return [_redact_deep(item) for item in value]
    if isinstance(value, dict):
        return {key: _redact_deep(item) for key, item in value.items()}
    return value


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


# Correlation


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for records logged in this context; ``None`` unbinds."""

    merged = dict(_correlation.get())
    for key, value in fields.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    token = _correlation.set(merged)
    try:
        yield
    finally:
        _correlation.reset(token)


@contextmanager
def operation_scope(call: str, *, database: str | None = None) -> Iterator[None]:
    with correlation_scope(call=call, database=database):
        yield


# Handlers


class _CorrelatingQueueHandler(logging.handlers.QueueHandler):
    """Stamp correlation onto records and drop them instead of blocking when full."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0
        self._dropped_lock = threading.Lock()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread has no correlation of its own.
        record.correlation = get_correlation_context()
        return super().prepare(record)  # type: ignore[no-any-return]

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, redactor: LogRedactor) -> None:
        super().__init__()
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _utc_stamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": _as_text(self._redact(record.getMessage())),
        }
        event.update(_correlation_of(record))
        extras = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in _CORRELATION_FIELDS
            and key != "correlation"
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._redact(extras)
        if record.exc_info is not None:
            event["exception"] = _as_text(self._redact(self.formatException(record.exc_info)))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """An installed queue handler, its listener thread and the sinks it feeds."""

    def __init__(self, config: LoggingConfig) -> None:
        if config.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        filename = config.log_filename.strip()
        if not filename or Path(filename).name != filename:
            raise ValueError("log_filename must be a bare file name")
        level = _level_number(config.level)

        directory = Path(config.base_log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        self.log_path = directory / filename

        if config.redactor is not None:
            redactor = config.redactor
        else:
            redactor = _redact_deep if config.redact_sql_literals else _no_redaction
        formatter = _JsonLinesFormatter(redactor)
        sinks: list[logging.Handler] = [logging.FileHandler(self.log_path, encoding="utf-8")]
        if config.log_to_stdout:
            sinks.append(logging.StreamHandler())
        for sink in sinks:
            sink.setLevel(level)
            sink.setFormatter(formatter)
        self._sinks = tuple(sinks)

        self._queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
        self._queue_handler = _CorrelatingQueueHandler(self._queue)
        self._queue_handler.setLevel(level)
        self._listener = logging.handlers.QueueListener(
            self._queue, *self._sinks, respect_handler_level=True
        )

        self.logger = logging.getLogger(config.logger_name)
        self.logger.setLevel(level)
        self.logger.propagate = False
        for previous in list(self.logger.handlers):
            self.logger.removeHandler(previous)
            previous.close()

        self._lock = threading.Lock()
        self._stopped = False
        self._listener.start()
        self.logger.addHandler(self._queue_handler)

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._stopped

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        """Wait for the listener to drain the queue, then flush the sinks."""

        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._stopped:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._stopped = True


# Setup and teardown


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install JSON-lines logging on ``config.logger_name``, replacing any active setup."""

    global _active, _atexit_hooked
    shutdown_logging()
    handle = StructuredLoggingHandle(config)
    with _active_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return handle


def setup_logging(
    observability: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str | None = None,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """Install logging from an ``[observability]`` config section and return the logger."""

    section = observability or {}
    level = section.get("log_level", "INFO")
    directory = log_dir if log_dir is not None else section.get("log_dir", "logs")
    handle = setup_structured_logging(
        LoggingConfig(
            base_log_dir=directory if isinstance(directory, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(section.get("log_to_stdout", False)),
            redact_sql_literals=bool(section.get("redact_sql_literals", True)),
        )
    )
    return handle.logger


def flush_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    target = handle if handle is not None else _current()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    global _active
    target = handle if handle is not None else _current()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _active_lock:
        if _active is target:
            _active = None


def _current() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


# Serialization helpers


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {level!r}")
    return number


def _utc_stamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _correlation_of(record: logging.LogRecord) -> dict[str, str]:
    found: dict[str, str] = {}
    stamped = getattr(record, "correlation", None)
    if isinstance(stamped, Mapping):
        found.update((k, v) for k, v in stamped.items() if isinstance(v, str))
    # An explicit ``extra={"call": ...}`` wins over the ambient context.
    for key in _CORRELATION_FIELDS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            found[key] = value.strip()
    return found


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return "" if value is None else json.dumps(value, sort_keys=True)


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.hex().upper()
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return repr(value)


__all__ = [
    "JSONValue",
    "LOG_FILENAME",
    "LogRedactor",
    "LoggingConfig",
    "PACKAGE_LOGGER",
    "StructuredLoggingHandle",
    "correlation_scope",
    "flush_logging",
    "get_correlation_context",
    "operation_scope",
    "redact_sql_literals",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
