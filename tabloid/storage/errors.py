"""Typed errors raised by the store layer."""

from enum import Enum


class ConflictKind(str, Enum):
    """Which uniqueness rule a write violated."""

    SLOT = "slot"
    ID = "id"
    OTHER = "other"


# Constraint names declared in the table DDL
_CONSTRAINT_KINDS = {
    "sources_pkey": ConflictKind.ID,
    "sources_slot_key": ConflictKind.SLOT,
    "tickers_pkey": ConflictKind.ID,
    "tickers_display_order_key": ConflictKind.SLOT,
}


class StoreError(Exception):
    """Base exception for store failures."""

    pass


class ConflictError(StoreError):
    """A uniqueness constraint rejected the write. Nothing was changed."""

    def __init__(self, kind: ConflictKind, message: str, constraint: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.constraint = constraint

    @classmethod
    def from_constraint(cls, constraint: str | None, message: str) -> "ConflictError":
        kind = _CONSTRAINT_KINDS.get(constraint or "", ConflictKind.OTHER)
        return cls(kind, message, constraint=constraint)


class PersistenceError(StoreError):
    """Unexpected database failure."""

    pass
