"""Scalar coercion, column accessors and result rows."""

from __future__ import annotations

from datetime import datetime

import pytest

from serial_sqlite.domain.values import (
    NULL,
    AccessMode,
    Blob,
    Boolean,
    ColumnValue,
    DataType,
    Integer,
    OpaqueUnsupported,
    Real,
    Row,
    StorageClass,
    Text,
    Timestamp,
    storage_class_of,
    to_scalar,
)


@pytest.mark.parametrize(
    ("native", "scalar"),
    [
        (None, NULL),
        (True, Boolean(True)),
        (3, Integer(3)),
        (2.5, Real(2.5)),
        ("x", Text("x")),
        (bytearray(b"ab"), Blob(b"ab")),
        (memoryview(b"cd"), Blob(b"cd")),
        (datetime(2021, 3, 4), Timestamp(datetime(2021, 3, 4))),
        (Text("kept"), Text("kept")),
        (2**63 - 1, Integer(2**63 - 1)),
        (-(2**63), Integer(-(2**63))),
    ],
)
def test_to_scalar(native: object, scalar: object) -> None:
    assert to_scalar(native) == scalar


def test_unknown_objects_become_opaque() -> None:
    value = object()
    scalar = to_scalar(value)

    assert isinstance(scalar, OpaqueUnsupported)
    assert scalar.value is value


@pytest.mark.parametrize("value", [2**63, -(2**63) - 1, Integer(2**64)])
def test_integers_wider_than_64_bits_become_opaque(value: object) -> None:
    assert isinstance(to_scalar(value), OpaqueUnsupported)


def test_storage_class_of() -> None:
    assert storage_class_of(None) is StorageClass.NULL
    assert storage_class_of(1) is StorageClass.INTEGER
    assert storage_class_of(1.0) is StorageClass.FLOAT
    assert storage_class_of("a") is StorageClass.TEXT
    assert storage_class_of(b"a") is StorageClass.BLOB


def test_data_type_sql_names() -> None:
    assert [kind.sql for kind in DataType] == ["TEXT", "INTEGER", "DOUBLE", "BOOLEAN", "BLOB", "DATE"]
    assert DataType("timestamp") is DataType.TIMESTAMP


def test_access_mode_uri_values() -> None:
    assert [mode.value for mode in AccessMode] == ["ro", "rw", "rwc"]


def test_column_accessors_only_answer_for_their_type() -> None:
    column = ColumnValue(Integer(5), "INTEGER")

    assert column.as_int() == 5
    assert column.as_string() is None
    assert column.as_float() is None
    assert column.as_object() == 5
    assert not column.is_null
    assert ColumnValue(NULL, "NULL").as_object() is None


def test_row_is_an_ordered_read_only_mapping() -> None:
    row = Row([("b", ColumnValue(Text("x"), "TEXT")), ("a", ColumnValue(NULL, "NULL"))])

    assert list(row) == ["b", "a"]
    assert len(row) == 2
    assert row["a"].is_null
    assert row.get("missing") is None
    assert row.to_dict() == {"b": "x", "a": None}
    with pytest.raises(TypeError):
        row["b"] = ColumnValue(NULL, "NULL")  # type: ignore[index]
