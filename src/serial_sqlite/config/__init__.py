"""
serial-sqlite config package public API.

Loads ``serial_sqlite.toml`` plus ``SERIAL_SQLITE_`` env overrides and fails fast
with structured validation/load errors.
"""

from serial_sqlite.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    database_path_from_config,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from serial_sqlite.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    SerialSQLiteConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "SerialSQLiteConfig",
    "assert_valid_config",
    "database_path_from_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
