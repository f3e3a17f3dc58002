"""Insert-or-detect-conflict primitive shared by every idempotent write.

Uniqueness constraints in the database are the only concurrency primitive the
pipeline relies on. ``try_insert`` turns a unique violation into a first-class
``ALREADY_EXISTS`` result instead of an exception.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

T = TypeVar("T")

UNIQUE_VIOLATION_SQLSTATE = "23505"


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class InsertResult(Generic[T]):
    outcome: InsertOutcome
    row: T | None = None

    @property
    def inserted(self) -> bool:
        return self.outcome == InsertOutcome.INSERTED

    @property
    def already_exists(self) -> bool:
        return self.outcome == InsertOutcome.ALREADY_EXISTS


def is_unique_violation(error: IntegrityError) -> bool:
    """True when the integrity error is a unique/primary key conflict."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig) if orig else str(error)
    return "UNIQUE constraint failed" in message or "duplicate key" in message


def try_insert(db: Session, row: T) -> InsertResult[T]:
    """
    Insert ``row`` inside a SAVEPOINT.

    On a unique violation the savepoint is rolled back (the surrounding
    transaction survives) and ``ALREADY_EXISTS`` is returned. Any other
    integrity error propagates.
    """
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        return InsertResult(InsertOutcome.ALREADY_EXISTS)
    return InsertResult(InsertOutcome.INSERTED, row)


def hash_key(*parts: object) -> str:
    """Deterministic sha256 over ``|``-joined parts."""
    raw = "|".join("" if part is None else str(part) for part in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
