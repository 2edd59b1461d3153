"""Numeric error codes returned by every database operation.

Absence of a code (``None``) means success. Codes are partitioned into bands:

- 0-101: SQLite result codes, passed through unmodified.
- 201-203: argument binding.
- 301-306: custom connections.
- 401-403: index/table discovery.
- 501-502: transactions and savepoints.
"""

from __future__ import annotations

import logging
import sqlite3
from enum import IntEnum
from typing import Final

SQLITE_OK: Final[int] = 0
SQLITE_ERROR: Final[int] = 1
SQLITE_CANTOPEN: Final[int] = 14
SQLITE_MISUSE: Final[int] = 21
SQLITE_RANGE: Final[int] = 25


class ErrorCode(IntEnum):
    BIND_TOO_FEW_ARGUMENTS = 201
    BIND_TOO_MANY_ARGUMENTS = 202
    BIND_IDENTIFIER_TYPE = 203
    CUSTOM_CONNECTION_ALREADY_OPEN = 301
    CUSTOM_OPEN_IN_TRANSACTION = 302
    CUSTOM_OPEN_IN_SAVEPOINT = 303
    CUSTOM_CONNECTION_NOT_OPEN = 304
    CUSTOM_CLOSE_IN_TRANSACTION = 305
    CUSTOM_CLOSE_IN_SAVEPOINT = 306
    INDEX_REQUIRES_COLUMNS = 401
    INDEX_NAMES_UNREADABLE = 402
    TABLE_NAMES_UNREADABLE = 403
    TRANSACTION_IN_SAVEPOINT = 501
    TRANSACTION_IN_TRANSACTION = 502


# Engine descriptions follow https://www.sqlite.org/c3ref/c_abort.html
_MESSAGES: Final[dict[int, str]] = {
    -1: "No error",
    0: "Successful result",
    1: "SQL error or missing database",
    2: "Internal logic error in SQLite",
    3: "Access permission denied",
    4: "Callback routine requested an abort",
    5: "The database file is locked",
    6: "A table in the database is locked",
    7: "A malloc() failed",
    8: "Attempt to write a readonly database",
    9: "Operation terminated by sqlite3_interrupt()",
    10: "Some kind of disk I/O error occurred",
    11: "The database disk image is malformed",
    12: "Unknown opcode in sqlite3_file_control()",
    13: "Insertion failed because database is full",
    14: "Unable to open the database file",
    15: "Database lock protocol error",
    16: "Database is empty",
    17: "The database schema changed",
    18: "String or BLOB exceeds size limit",
    19: "Abort due to constraint violation",
    20: "Data type mismatch",
    21: "Library used incorrectly",
    22: "Uses OS features not supported on host",
    23: "Authorization denied",
    24: "Auxiliary database format error",
    25: "2nd parameter to sqlite3_bind out of range",
    26: "File opened that is not a database file",
    27: "Notifications from sqlite3_log()",
    28: "Warnings from sqlite3_log()",
    100: "sqlite3_step() has another row ready",
    101: "sqlite3_step() has finished executing",
    ErrorCode.BIND_TOO_FEW_ARGUMENTS: "Not enough objects to bind provided",
    ErrorCode.BIND_TOO_MANY_ARGUMENTS: "Too many objects to bind provided",
    ErrorCode.BIND_IDENTIFIER_TYPE: "Object to bind as identifier must be a String",
    ErrorCode.CUSTOM_CONNECTION_ALREADY_OPEN: "A custom connection is already open",
    ErrorCode.CUSTOM_OPEN_IN_TRANSACTION: "Cannot open a custom connection inside a transaction",
    ErrorCode.CUSTOM_OPEN_IN_SAVEPOINT: "Cannot open a custom connection inside a savepoint",
    ErrorCode.CUSTOM_CONNECTION_NOT_OPEN: "A custom connection is not currently open",
    ErrorCode.CUSTOM_CLOSE_IN_TRANSACTION: "Cannot close a custom connection inside a transaction",
    ErrorCode.CUSTOM_CLOSE_IN_SAVEPOINT: "Cannot close a custom connection inside a savepoint",
    ErrorCode.INDEX_REQUIRES_COLUMNS: "At least one column name must be provided",
    ErrorCode.INDEX_NAMES_UNREADABLE: "Error extracting index names from sqlite_master",
    ErrorCode.TABLE_NAMES_UNREADABLE: "Error extracting table names from sqlite_master",
    ErrorCode.TRANSACTION_IN_SAVEPOINT: "Cannot begin a transaction within a savepoint",
    ErrorCode.TRANSACTION_IN_TRANSACTION: "Cannot begin a transaction within another transaction",
}


def error_message_for_code(code: int) -> str:
    """Return the human-readable message for ``code`` (``"Unknown error"`` if unmapped)."""

    return _MESSAGES.get(int(code), "Unknown error")


def engine_error_code(exc: BaseException) -> int:
    """Map an exception raised by the ``sqlite3`` binding onto a primary SQLite result code."""

    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int):
        # Extended result codes carry the primary code in the low byte.
        return code & 0xFF
    if isinstance(exc, sqlite3.ProgrammingError) and "binding" in str(exc).lower():
        return SQLITE_RANGE
    if isinstance(exc, (sqlite3.ProgrammingError, sqlite3.Warning)):
        return SQLITE_MISUSE
    return SQLITE_ERROR


def log_failure(
    logger: logging.Logger,
    operation: str,
    code: int,
    detail: str | None = None,
    *,
    level: int = logging.ERROR,
    **fields: object,
) -> int:
    """Emit the structured diagnostic for a failed operation and return ``code``."""

    logger.log(
        level,
        "%s failed with code %d (%s)%s",
        operation,
        code,
        error_message_for_code(code),
        f": {detail}" if detail else "",
        extra={"operation": operation, "code": int(code), "detail": detail, **fields},
    )
    return int(code)


__all__ = [
    "SQLITE_CANTOPEN",
    "SQLITE_ERROR",
    "SQLITE_MISUSE",
    "SQLITE_OK",
    "SQLITE_RANGE",
    "ErrorCode",
    "engine_error_code",
    "error_message_for_code",
    "log_failure",
]
