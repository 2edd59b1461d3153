"""
serial-sqlite: configuration schema and validation.

Purpose
- Define the built-in defaults for ``serial_sqlite.toml`` and strict validation rules.

Validation returns structured issues (field path + message) instead of failing on
the first problem, so a broken file reports everything at once.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from serial_sqlite.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_DATABASE_DIRECTORY,
    DEFAULT_DATABASE_FILENAME,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
BINDING_MODES: Final[tuple[str, ...]] = ("textual", "native")

# Resolved against the config file's directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("database", "directory"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class DatabaseConfig(TypedDict):
    directory: str
    filename: str
    busy_timeout_ms: int


class BindingConfig(TypedDict):
    mode: Literal["textual", "native"]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_sql_literals: bool


class SerialSQLiteConfig(TypedDict):
    meta: MetaConfig
    database: DatabaseConfig
    binding: BindingConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[SerialSQLiteConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "database": {
        "directory": DEFAULT_DATABASE_DIRECTORY,
        "filename": DEFAULT_DATABASE_FILENAME,
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
    },
    "binding": {
        "mode": "textual",
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_stdout": False,
        "redact_sql_literals": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _Invalid(Exception):
    """A field rule rejected its value; the message becomes the issue text."""


# A rule returns the normalized value or raises ``_Invalid``.
_Rule = Callable[[object], object]


def _kind(value: object) -> str:
    return type(value).__name__


def _whole_number(value: object, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Invalid(f"expected integer, got {_kind(value)}")
    if value < minimum:
        raise _Invalid(f"must be >= {minimum}")
    return value


def _integer(minimum: int) -> _Rule:
    return lambda value: _whole_number(value, minimum)


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {_kind(value)}")
    stripped = value.strip()
    if not stripped:
        raise _Invalid("must not be empty")
    if "\x00" in stripped:
        raise _Invalid("must not contain NUL bytes")
    return stripped


def _file_name(value: object) -> str:
    name = _text(value)
    if "/" in name or "\\" in name:
        raise _Invalid("must be a file name, not a path")
    return name


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {_kind(value)}")
    return value


def _choice(allowed: tuple[str, ...]) -> _Rule:
    def rule(value: object) -> object:
        text = _text(value)
        if text not in allowed:
            raise _Invalid(f"invalid value {text!r}; expected one of: {', '.join(sorted(allowed))}")
        return text

    return rule


def _schema_version(value: object) -> object:
    version = _whole_number(value, 1)
    if version != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(version))
    return version


_RULES: Final[dict[str, dict[str, _Rule]]] = {
    "meta": {"schema_version": _schema_version},
    "database": {
        "directory": _text,
        "filename": _file_name,
        "busy_timeout_ms": _integer(0),
    },
    "binding": {"mode": _choice(BINDING_MODES)},
    "observability": {
        "log_level": _choice(LOG_LEVELS),
        "log_dir": _text,
        "log_to_stdout": _flag,
        "redact_sql_literals": _flag,
    },
}


def default_config() -> SerialSQLiteConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade serial_sqlite.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the serial-sqlite package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Return a deep copy of ``base`` with ``overlay`` merged in, section by section."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping):
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check every section and field, collecting issues under dotted paths."""

    issues: list[ConfigValidationIssue] = []

    def report(path: str, message: str) -> None:
        issues.append(ConfigValidationIssue(path=path, message=message))

    if not isinstance(config, Mapping):
        report("<root>", f"expected object, got {_kind(config)}")
        return ConfigValidationResult(config=None, issues=tuple(issues))

    for name in sorted(set(config) - set(_RULES), key=str):
        report(str(name), "unknown field")

    normalized: dict[str, Any] = {}
    for section, rules in _RULES.items():
        if section not in config:
            report(section, "missing required field")
            continue
        payload = config[section]
        if not isinstance(payload, Mapping):
            report(section, f"expected object, got {_kind(payload)}")
            continue
        for key in sorted(set(payload) - set(rules), key=str):
            report(f"{section}.{key}", "unknown field")
        values: dict[str, object] = {}
        for key, rule in rules.items():
            path = f"{section}.{key}"
            if key not in payload:
                report(path, "missing required field")
                continue
            try:
                values[key] = rule(payload[key])
            except _Invalid as exc:
                report(path, str(exc))
        normalized[section] = values

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


__all__ = [
    "BINDING_MODES",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "BindingConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DatabaseConfig",
    "MetaConfig",
    "ObservabilityConfig",
    "SerialSQLiteConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
