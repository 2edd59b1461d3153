"""Statement binding and value encoding/decoding."""

from serial_sqlite.binding.binder import BindingMode, BindResult, bind
from serial_sqlite.binding.codec import (
    DeclaredCell,
    TypeFamily,
    classify_declared_type,
    decode_cell,
    decode_column,
    escape_identifier,
    escape_value,
    register_declared_type_converters,
    to_parameter,
)

__all__ = [
    "BindResult",
    "BindingMode",
    "DeclaredCell",
    "TypeFamily",
    "bind",
    "classify_declared_type",
    "decode_cell",
    "decode_column",
    "escape_identifier",
    "escape_value",
    "register_declared_type_converters",
    "to_parameter",
]
