"""Connection ownership, serialization, transactions and the public facade."""

from serial_sqlite.persistence.connection import (
    ConnectionManager,
    ConnectionMode,
    ConnectionState,
)
from serial_sqlite.persistence.database import Database, Session, default_database_path
from serial_sqlite.persistence.scheduler import TaskScheduler
from serial_sqlite.persistence.transactions import TransactionCoordinator

__all__ = [
    "ConnectionManager",
    "ConnectionMode",
    "ConnectionState",
    "Database",
    "Session",
    "TaskScheduler",
    "TransactionCoordinator",
    "default_database_path",
]
