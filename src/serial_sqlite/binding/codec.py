"""SQL literal encoding for bound values and typed decoding of result cells."""

from __future__ import annotations

import functools
import logging
import math
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Final

from serial_sqlite.domain.values import (
    INTEGER_MIN,
    NULL,
    TIMESTAMP_FORMAT,
    Blob,
    Boolean,
    ColumnValue,
    Identifier,
    Integer,
    Null,
    OpaqueUnsupported,
    Real,
    ScalarValue,
    StorageClass,
    Text,
    Timestamp,
    storage_class_of,
    to_scalar,
)

_log = logging.getLogger(__name__)


class TypeFamily(StrEnum):
    """Type-affinity family of a declared column type."""

    INTEGER = "integer"
    TEXT = "text"
    BLOB = "blob"
    REAL = "real"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


# ``sqlite3`` hands converters the declared type up to the first blank or "(",
# so "UNSIGNED BIG INT" arrives as UNSIGNED and "VARCHAR(255)" as VARCHAR.
_FAMILY_KEYWORDS: Final[dict[str, TypeFamily]] = {
    "INT": TypeFamily.INTEGER,
    "INTEGER": TypeFamily.INTEGER,
    "TINYINT": TypeFamily.INTEGER,
    "SMALLINT": TypeFamily.INTEGER,
    "MEDIUMINT": TypeFamily.INTEGER,
    "BIGINT": TypeFamily.INTEGER,
    "UNSIGNED": TypeFamily.INTEGER,
    "INT2": TypeFamily.INTEGER,
    "INT8": TypeFamily.INTEGER,
    "CHARACTER": TypeFamily.TEXT,
    "VARCHAR": TypeFamily.TEXT,
    "VARYING": TypeFamily.TEXT,
    "NCHAR": TypeFamily.TEXT,
    "NATIVE": TypeFamily.TEXT,
    "NVARCHAR": TypeFamily.TEXT,
    "TEXT": TypeFamily.TEXT,
    "CLOB": TypeFamily.TEXT,
    "BLOB": TypeFamily.BLOB,
    "NONE": TypeFamily.BLOB,
    "REAL": TypeFamily.REAL,
    "DOUBLE": TypeFamily.REAL,
    "FLOAT": TypeFamily.REAL,
    "NUMERIC": TypeFamily.REAL,
    "DECIMAL": TypeFamily.REAL,
    "BOOLEAN": TypeFamily.BOOLEAN,
    "DATE": TypeFamily.DATETIME,
    "DATETIME": TypeFamily.DATETIME,
}

# Declared types with a stdlib default converter that must keep their stored text.
_PASSTHROUGH_KEYWORDS: Final[tuple[str, ...]] = ("TIMESTAMP",)

_CONVERTERS_LOCK = threading.Lock()
_CONVERTERS_REGISTERED = False


@dataclass(frozen=True, slots=True)
class DeclaredCell:
    """Raw bytes of a non-NULL cell whose column carries a recognised declared type."""

    declared_type: str
    raw: bytes


def register_declared_type_converters() -> None:
    """Install ``sqlite3`` converters that tag cells with their declared column type.

    Converters are process-wide in ``sqlite3`` and only apply to connections opened
    with ``detect_types=sqlite3.PARSE_DECLTYPES``.
    """

    global _CONVERTERS_REGISTERED
    with _CONVERTERS_LOCK:
        if _CONVERTERS_REGISTERED:
            return
        for keyword, family in _FAMILY_KEYWORDS.items():
            if family is TypeFamily.REAL:
                # Converters see the engine's 15-digit text form of a REAL; the
                # native float is exact, so these cells decode by storage class.
                continue
            sqlite3.register_converter(keyword, functools.partial(DeclaredCell, keyword))
        for keyword in _PASSTHROUGH_KEYWORDS:
            sqlite3.register_converter(keyword, _passthrough)
        _CONVERTERS_REGISTERED = True


def classify_declared_type(declared_type: str | None) -> TypeFamily | None:
    """Return the affinity family for a declared type name, or ``None`` if unrecognised."""

    if not declared_type:
        return None
    normalized = declared_type.strip().upper()
    family = _FAMILY_KEYWORDS.get(normalized)
    if family is not None:
        return family
    head = normalized.replace("(", " ").split(" ", 1)[0]
    return _FAMILY_KEYWORDS.get(head)


def escape_value(value: object) -> str:
    """Render ``value`` as a SQL literal, including any surrounding quotes."""

    scalar = to_scalar(value)
    if isinstance(scalar, Null):
        return "NULL"
    if isinstance(scalar, Text):
        return "'" + scalar.value.replace("'", "''") + "'"
    if isinstance(scalar, Boolean):
        return "1" if scalar.value else "0"
    if isinstance(scalar, Integer):
        if scalar.value == INTEGER_MIN:
            # The engine reads the bare literal 9223372036854775808 as REAL.
            return f"({INTEGER_MIN + 1} - 1)"
        return str(scalar.value)
    if isinstance(scalar, Real):
        return _real_literal(scalar.value)
    if isinstance(scalar, Blob):
        return "X'" + scalar.value.hex().upper() + "'"
    if isinstance(scalar, Timestamp):
        return escape_value(Text(scalar.value.strftime(TIMESTAMP_FORMAT)))
    _warn_unsupported(scalar)
    return "NULL"


def escape_identifier(name: str) -> str:
    """Render ``name`` as a double-quoted SQL identifier."""

    return '"' + name.replace('"', '""') + '"'


def to_parameter(value: object) -> object:
    """Convert a bound value into a native ``sqlite3`` parameter."""

    scalar = to_scalar(value)
    if isinstance(scalar, Null):
        return None
    if isinstance(scalar, Boolean):
        return 1 if scalar.value else 0
    if isinstance(scalar, (Text, Integer, Real, Blob)):
        return scalar.value
    if isinstance(scalar, Timestamp):
        return scalar.value.strftime(TIMESTAMP_FORMAT)
    _warn_unsupported(scalar)
    return None


def identifier_name(argument: object) -> str | None:
    """Return the identifier text for a string-typed argument, else ``None``."""

    if isinstance(argument, Identifier):
        return argument.name
    if isinstance(argument, str):
        return argument
    if isinstance(argument, Text):
        return argument.value
    return None


def decode_column(
    raw: object,
    declared_type: str | None,
    storage_class: StorageClass,
) -> ColumnValue:
    """Decode a raw cell according to its declared type, or its storage class if undeclared."""

    family = classify_declared_type(declared_type)
    if storage_class is StorageClass.NULL or raw is None:
        return ColumnValue(NULL, declared_type.upper() if family else StorageClass.NULL.value)
    if family is None or declared_type is None:
        return ColumnValue(_decode_storage(raw, storage_class), storage_class.value)
    return ColumnValue(_decode_declared(raw, family, declared_type), declared_type.upper())


def decode_cell(cell: object) -> ColumnValue:
    """Decode one value produced by a cursor opened with declared-type detection."""

    if isinstance(cell, DeclaredCell):
        # Converters always read the cell through the blob interface.
        return decode_column(cell.raw, cell.declared_type, StorageClass.BLOB)
    return decode_column(cell, None, storage_class_of(cell))


def _decode_storage(raw: object, storage_class: StorageClass) -> ScalarValue:
    if storage_class is StorageClass.INTEGER and isinstance(raw, int):
        return Integer(raw)
    if storage_class is StorageClass.FLOAT and isinstance(raw, float):
        return Real(raw)
    if storage_class is StorageClass.TEXT and isinstance(raw, str):
        return Text(raw)
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return Blob(bytes(raw))
    return to_scalar(raw)


def _decode_declared(raw: object, family: TypeFamily, declared_type: str) -> ScalarValue:
    data = raw if isinstance(raw, bytes) else str(raw).encode("utf-8")
    if family is TypeFamily.BLOB:
        return Blob(data)
    text = data.decode("utf-8", errors="replace")
    if family is TypeFamily.TEXT:
        return Text(text)
    if family is TypeFamily.DATETIME:
        try:
            return Timestamp(datetime.strptime(text, TIMESTAMP_FORMAT))
        except ValueError:
            _log.warning(
                "stored %s value %r does not match %s, returning NULL",
                declared_type,
                text,
                TIMESTAMP_FORMAT,
                extra={"operation": "decode column", "detail": declared_type},
            )
            return NULL
    number = _parse_number(text)
    if number is None:
        _log.warning(
            "stored %s value %r is not numeric, returning NULL",
            declared_type,
            text,
            extra={"operation": "decode column", "detail": declared_type},
        )
        return NULL
    if family is TypeFamily.REAL:
        return Real(float(number))
    if family is TypeFamily.BOOLEAN:
        return Boolean(int(number) != 0)
    return Integer(int(number))


def _passthrough(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _parse_number(text: str) -> int | float | None:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def _real_literal(value: float) -> str:
    if math.isnan(value):
        # SQLite stores NaN as NULL.
        return "NULL"
    if math.isinf(value):
        return "9e999" if value > 0 else "-9e999"
    return repr(value)


def _warn_unsupported(scalar: OpaqueUnsupported) -> None:
    _log.warning(
        "object %r is not a supported type and will be inserted into the database as NULL",
        scalar.value,
        extra={"operation": "escape value", "detail": type(scalar.value).__name__},
    )


__all__ = [
    "DeclaredCell",
    "TypeFamily",
    "classify_declared_type",
    "decode_cell",
    "decode_column",
    "escape_identifier",
    "escape_value",
    "identifier_name",
    "register_declared_type_converters",
    "to_parameter",
]
