"""
serial-sqlite

Serialized, reentrancy-aware access to a single SQLite database file with
``?``/``i?`` statement binding and typed result rows.

Importing the package has no side effects (no config loading, no logging setup,
no worker threads until a ``Database`` is constructed).
"""

from serial_sqlite.binding import BindingMode
from serial_sqlite.domain import (
    NULL,
    AccessMode,
    Blob,
    Boolean,
    ColumnValue,
    CountResult,
    DataType,
    ErrorCode,
    Identifier,
    Integer,
    NamesResult,
    Null,
    OpaqueUnsupported,
    QueryResult,
    Real,
    Row,
    ScalarValue,
    Text,
    Timestamp,
    error_message_for_code,
)
from serial_sqlite.persistence import Database, Session, default_database_path

__version__ = "0.1.0"

__all__ = [
    "NULL",
    "AccessMode",
    "BindingMode",
    "Blob",
    "Boolean",
    "ColumnValue",
    "CountResult",
    "DataType",
    "Database",
    "ErrorCode",
    "Identifier",
    "Integer",
    "NamesResult",
    "Null",
    "OpaqueUnsupported",
    "QueryResult",
    "Real",
    "Row",
    "ScalarValue",
    "Session",
    "Text",
    "Timestamp",
    "__version__",
    "default_database_path",
    "error_message_for_code",
]
