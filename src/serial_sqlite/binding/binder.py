"""Placeholder substitution for SQL templates.

Two placeholder forms are recognised while scanning the template:

- ``?`` consumes the next argument as a value.
- ``i?`` consumes the next argument as an identifier; both characters are replaced.

The scan is purely textual. Placeholders inside string literals or comments in the
template are substituted too.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from serial_sqlite.binding.codec import (
    escape_identifier,
    escape_value,
    identifier_name,
    to_parameter,
)
from serial_sqlite.domain.errors import ErrorCode, log_failure
from serial_sqlite.domain.values import Identifier

_log = logging.getLogger(__name__)

_OPERATION = "object binding"


class BindingMode(StrEnum):
    """How ``?`` value placeholders reach the engine."""

    TEXTUAL = "textual"
    NATIVE = "native"


@dataclass(frozen=True, slots=True)
class BindResult:
    sql: str
    parameters: tuple[object, ...] = field(default_factory=tuple)
    error: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def bind(
    template: str,
    args: Sequence[object] | None = None,
    *,
    mode: BindingMode = BindingMode.TEXTUAL,
) -> BindResult:
    """Substitute ``args`` into ``template``.

    In ``TEXTUAL`` mode values are spliced as escaped literals. In ``NATIVE`` mode
    ``?`` stays in the SQL and the converted value is appended to ``parameters``.
    Identifiers are always spliced.
    """

    arguments = list(args or ())
    pieces: list[str] = []
    parameters: list[object] = []
    index = 0
    previous = ""
    for char in template:
        if char != "?":
            pieces.append(char)
            previous = char
            continue
        if index >= len(arguments):
            return _failed(ErrorCode.BIND_TOO_FEW_ARGUMENTS)
        argument = arguments[index]
        if previous == "i":
            name = identifier_name(argument)
            if name is None:
                return _failed(ErrorCode.BIND_IDENTIFIER_TYPE, index)
            pieces.pop()
            pieces.append(escape_identifier(name))
        elif isinstance(argument, Identifier):
            return _failed(ErrorCode.BIND_IDENTIFIER_TYPE, index)
        elif mode is BindingMode.NATIVE:
            pieces.append("?")
            parameters.append(to_parameter(argument))
        else:
            pieces.append(escape_value(argument))
        index += 1
        previous = char
    if index != len(arguments):
        return _failed(ErrorCode.BIND_TOO_MANY_ARGUMENTS)
    return BindResult("".join(pieces), tuple(parameters))


def _failed(code: ErrorCode, argument_index: int | None = None) -> BindResult:
    detail = None if argument_index is None else f"argument index {argument_index}"
    fields: dict[str, object] = {}
    if argument_index is not None:
        fields["argument_index"] = argument_index
    log_failure(_log, _OPERATION, code, detail, **fields)
    return BindResult("", (), int(code))


__all__ = ["BindResult", "BindingMode", "bind"]
