"""Domain types: scalar values, rows, enumerations, and error codes."""

from serial_sqlite.domain.errors import (
    ErrorCode,
    engine_error_code,
    error_message_for_code,
    log_failure,
)
from serial_sqlite.domain.values import (
    NULL,
    TIMESTAMP_FORMAT,
    AccessMode,
    Blob,
    Boolean,
    ColumnValue,
    CountResult,
    DataType,
    Identifier,
    Integer,
    NamesResult,
    Null,
    OpaqueUnsupported,
    QueryResult,
    Real,
    Row,
    ScalarValue,
    StorageClass,
    Text,
    Timestamp,
    storage_class_of,
    to_scalar,
)

__all__ = [
    "NULL",
    "TIMESTAMP_FORMAT",
    "AccessMode",
    "Blob",
    "Boolean",
    "ColumnValue",
    "CountResult",
    "DataType",
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
    "StorageClass",
    "Text",
    "Timestamp",
    "engine_error_code",
    "error_message_for_code",
    "log_failure",
    "storage_class_of",
    "to_scalar",
]
