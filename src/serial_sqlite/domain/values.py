"""Typed scalar values, bound arguments, and result rows."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Final, TypeAlias

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# SQLite INTEGER storage is a signed 64-bit value.
INTEGER_MIN: Final[int] = -(2**63)
INTEGER_MAX: Final[int] = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Null:
    """The SQL NULL value."""


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Integer:
    value: int


@dataclass(frozen=True, slots=True)
class Real:
    value: float


@dataclass(frozen=True, slots=True)
class Boolean:
    value: bool


@dataclass(frozen=True, slots=True)
class Blob:
    value: bytes


@dataclass(frozen=True, slots=True)
class Timestamp:
    value: datetime


@dataclass(frozen=True, slots=True)
class OpaqueUnsupported:
    """A caller value with no SQL representation; always stored as NULL."""

    value: object = field(compare=False)


ScalarValue: TypeAlias = Null | Text | Integer | Real | Boolean | Blob | Timestamp | OpaqueUnsupported

NULL: Final[Null] = Null()

_SCALAR_TYPES: Final[tuple[type, ...]] = (
    Null,
    Text,
    Integer,
    Real,
    Boolean,
    Blob,
    Timestamp,
    OpaqueUnsupported,
)


@dataclass(frozen=True, slots=True)
class Identifier:
    """A table/column/index name bound to an ``i?`` placeholder."""

    name: str


def to_scalar(value: object) -> ScalarValue:
    """Coerce a native Python value (or an existing scalar) into a ``ScalarValue``."""

    if isinstance(value, Integer):
        return value if INTEGER_MIN <= value.value <= INTEGER_MAX else OpaqueUnsupported(value)
    if isinstance(value, _SCALAR_TYPES):
        return value  # type: ignore[return-value]
    if value is None:
        return NULL
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return Boolean(value)
    if isinstance(value, int):
        # Wider values would be stored as REAL by the engine.
        return Integer(value) if INTEGER_MIN <= value <= INTEGER_MAX else OpaqueUnsupported(value)
    if isinstance(value, float):
        return Real(value)
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Blob(bytes(value))
    if isinstance(value, datetime):
        return Timestamp(value)
    return OpaqueUnsupported(value)


class StorageClass(StrEnum):
    """Runtime value category reported by the engine for a cell."""

    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    TEXT = "TEXT"
    BLOB = "BLOB"
    NULL = "NULL"


def storage_class_of(value: object) -> StorageClass:
    if value is None:
        return StorageClass.NULL
    if isinstance(value, int):
        return StorageClass.INTEGER
    if isinstance(value, float):
        return StorageClass.FLOAT
    if isinstance(value, str):
        return StorageClass.TEXT
    return StorageClass.BLOB


class DataType(StrEnum):
    """Column types accepted by ``Database.create_table``."""

    TEXT = "text"
    INTEGER = "integer"
    REAL = "real"
    BOOLEAN = "boolean"
    BLOB = "blob"
    TIMESTAMP = "timestamp"

    @property
    def sql(self) -> str:
        return _DATA_TYPE_SQL[self]


_DATA_TYPE_SQL: Final[dict[DataType, str]] = {
    DataType.TEXT: "TEXT",
    DataType.INTEGER: "INTEGER",
    DataType.REAL: "DOUBLE",
    DataType.BOOLEAN: "BOOLEAN",
    DataType.BLOB: "BLOB",
    DataType.TIMESTAMP: "DATE",
}


class AccessMode(StrEnum):
    """Open modes for a custom connection (SQLite URI ``mode=`` values)."""

    READ_ONLY = "ro"
    READ_WRITE = "rw"
    READ_WRITE_CREATE = "rwc"


@dataclass(frozen=True, slots=True)
class ColumnValue:
    """A decoded cell: the typed value plus the declared or inferred SQL type."""

    value: ScalarValue
    sql_type: str

    @property
    def is_null(self) -> bool:
        return isinstance(self.value, Null)

    def as_string(self) -> str | None:
        return self.value.value if isinstance(self.value, Text) else None

    def as_int(self) -> int | None:
        return self.value.value if isinstance(self.value, Integer) else None

    def as_float(self) -> float | None:
        return self.value.value if isinstance(self.value, Real) else None

    def as_bool(self) -> bool | None:
        return self.value.value if isinstance(self.value, Boolean) else None

    def as_bytes(self) -> bytes | None:
        return self.value.value if isinstance(self.value, Blob) else None

    def as_datetime(self) -> datetime | None:
        return self.value.value if isinstance(self.value, Timestamp) else None

    def as_object(self) -> object | None:
        if isinstance(self.value, Null):
            return None
        return self.value.value


class Row(Mapping[str, ColumnValue]):
    """Ordered column-name → ``ColumnValue`` mapping detached from the connection."""

    __slots__ = ("_columns",)

    def __init__(self, columns: Iterable[tuple[str, ColumnValue]] = ()) -> None:
        self._columns: dict[str, ColumnValue] = dict(columns)

    def __getitem__(self, key: str) -> ColumnValue:
        return self._columns[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"Row({self._columns!r})"

    def to_dict(self) -> dict[str, object | None]:
        """Return native Python values keyed by column name."""

        return {name: column.as_object() for name, column in self._columns.items()}


@dataclass(frozen=True, slots=True)
class QueryResult:
    rows: list[Row]
    error: int | None = None


@dataclass(frozen=True, slots=True)
class NamesResult:
    names: list[str]
    error: int | None = None


@dataclass(frozen=True, slots=True)
class CountResult:
    value: int
    error: int | None = None


__all__ = [
    "INTEGER_MAX",
    "INTEGER_MIN",
    "NULL",
    "TIMESTAMP_FORMAT",
    "AccessMode",
    "Blob",
    "Boolean",
    "ColumnValue",
    "CountResult",
    "DataType",
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
    "storage_class_of",
    "to_scalar",
]
