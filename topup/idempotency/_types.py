"""
Idempotency types: records, results, errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto


class RecordState(Enum):
    """
    Lifecycle:
        PENDING → COMPLETED
                → FAILED
                → (expired / deleted)
    """

    PENDING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class IdempotencyRecord[T, E]:
    """
    Stored record. value only for COMPLETED, error only for FAILED.

    input_hash fingerprints the input so a reused key with different
    arguments is detected instead of answered from cache.
    """

    key: str
    state: RecordState
    value: T | None
    error: E | None
    created_at: datetime
    expires_at: datetime | None
    input_hash: str | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) > self.expires_at


@dataclass(frozen=True, slots=True)
class IdempotencyResult[T]:
    """Successful run. from_cache is True when the operation did not execute."""

    value: T
    from_cache: bool
    key: str


class IdempotencyErrorKind(Enum):
    TIMEOUT = auto()  # Gave up waiting on a pending record
    STORE_ERROR = auto()  # Storage backend error
    EXECUTION = auto()  # Wrapped operation failed
    INPUT_MISMATCH = auto()  # Key reused with a different input


@dataclass(frozen=True, slots=True)
class IdempotencyError[E]:
    """original_error carries the operation's own error for EXECUTION."""

    kind: IdempotencyErrorKind
    message: str
    original_error: E | None = None


__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyErrorKind",
    "IdempotencyError",
)
