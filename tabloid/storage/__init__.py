"""Storage layer for records, sources and tickers."""

from tabloid.storage.database import Database
from tabloid.storage.errors import (
    ConflictError,
    ConflictKind,
    PersistenceError,
    StoreError,
)
from tabloid.storage.repository import RecordRepository
from tabloid.storage.writer import StoreWriter

__all__ = [
    "ConflictError",
    "ConflictKind",
    "Database",
    "PersistenceError",
    "RecordRepository",
    "StoreError",
    "StoreWriter",
]
