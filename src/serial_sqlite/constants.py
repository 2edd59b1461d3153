"""Stable constants shared across the package."""

from __future__ import annotations

from typing import Final

# Schema version of ``serial_sqlite.toml``.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Default database location (directory is expanded against the user's home).
DEFAULT_DATABASE_DIRECTORY: Final[str] = "~/Documents"
DEFAULT_DATABASE_FILENAME: Final[str] = "SerialSQLite.sqlite"
DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5000

# Name of the serial worker thread.
WORKER_THREAD_NAME: Final[str] = "serial-sqlite-worker"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "DEFAULT_DATABASE_DIRECTORY",
    "DEFAULT_DATABASE_FILENAME",
    "WORKER_THREAD_NAME",
]
