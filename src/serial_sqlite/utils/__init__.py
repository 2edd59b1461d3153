"""Shared utilities."""

from serial_sqlite.utils.concurrency import (
    ExecutorClosedError,
    OwnershipToken,
    SerialExecutor,
    current_tokens,
    hold_token,
    holds_token,
)

__all__ = [
    "ExecutorClosedError",
    "OwnershipToken",
    "SerialExecutor",
    "current_tokens",
    "hold_token",
    "holds_token",
]
