"""SQLite database layer: connection management and the state repository."""

from shared.db.connection import Database
from shared.db.state_repository import SqliteStateRepository, StateSnapshot

__all__ = [
    "Database",
    "SqliteStateRepository",
    "StateSnapshot",
]
