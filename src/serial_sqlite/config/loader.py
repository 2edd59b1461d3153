"""Effective configuration for a serial-sqlite process.

Layers, lowest first: built-in defaults, ``serial_sqlite.toml``, ``SERIAL_SQLITE_*``
environment variables, then explicit overrides. The result is validated after the
file layer and again after the last layer. ``database.directory`` and
``observability.log_dir`` are resolved against the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from serial_sqlite.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "serial_sqlite.toml"
ENV_PREFIX: Final[str] = "SERIAL_SQLITE_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ConfigLoadError(ValueError):
    """The config file or an environment override could not be read."""


def load_config(
    config_path: str | Path | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the effective config.

    Without ``config_path`` the loader looks for ``serial_sqlite.toml`` in the working
    directory and silently falls back to defaults when it is absent. ``overrides``
    takes dotted keys such as ``"binding.mode"``.
    """

    if config_path is None:
        source = Path.cwd().resolve() / DEFAULT_CONFIG_FILE
        from_file = _read_toml(source) if source.is_file() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.exists():
            raise ConfigLoadError(f"config file not found: {source}")
        from_file = _read_toml(source)

    config = assert_valid_config(merge_config(default_config(), from_file))
    env = os.environ if environ is None else environ
    config = merge_config(config, _environment_layer(config, env))
    config = merge_config(config, _override_layer(overrides or {}))
    config = assert_valid_config(config)
    return normalize_paths(config, base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with path fields made absolute against ``base_dir``."""

    result = merge_config({}, config)
    for section, key in PATH_FIELDS:
        raw = result.get(section, {}).get(key)
        if not isinstance(raw, str):
            continue
        path = Path(os.path.expandvars(raw)).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        result[section][key] = Path(os.path.normpath(path)).as_posix()
    return result


def database_path_from_config(config: Mapping[str, Any]) -> Path:
    database = config["database"]
    return Path(database["directory"]) / database["filename"]


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def env_var_name(section: str, key: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _scalar_fields(config: Mapping[str, Any]) -> Iterator[tuple[str, str, object]]:
    for section, fields in sorted(config.items()):
        if isinstance(fields, Mapping):
            for key, current in sorted(fields.items()):
                yield section, key, current


def _environment_layer(config: Mapping[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    # The type of the value already in place decides how the variable is parsed.
    layer: dict[str, dict[str, object]] = {}
    for section, key, current in _scalar_fields(config):
        name = env_var_name(section, key)
        if name not in env:
            continue
        raw = env[name].strip()
        dotted = f"{section}.{key}"
        value: object
        if isinstance(current, bool):
            lowered = raw.lower()
            if lowered not in _TRUTHY | _FALSY:
                raise ConfigLoadError(
                    f"{name} ({dotted}) must be a boolean: one of 1/0, true/false, yes/no, on/off"
                )
            value = lowered in _TRUTHY
        elif isinstance(current, int):
            try:
                value = int(raw)
            except ValueError:
                raise ConfigLoadError(f"{name} ({dotted}) must be an integer") from None
        else:
            value = raw
        layer.setdefault(section, {})[key] = value
    return layer


def _override_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        section, _, key = dotted.partition(".")
        if not section:
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        if not key:
            if not isinstance(value, Mapping):
                raise ConfigLoadError(f"override {dotted!r} must name a field or map a section")
            layer[section] = merge_config(layer.get(section, {}), value)
            continue
        layer.setdefault(section, {})[key] = value
    return layer


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "database_path_from_config",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
