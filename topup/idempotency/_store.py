"""
Idempotency store: Result-based storage protocol plus an in-memory store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from kungfu import Result, Ok, Error

from topup.idempotency._types import IdempotencyRecord, RecordState


@dataclass(frozen=True, slots=True)
class StoreError:
    message: str
    cause: Exception | None = None


class Store[T](Protocol):
    """
    Idempotency store.

    set_pending must be an atomic compare-and-swap: Ok(True) when this
    caller now owns the key, Ok(False) when a live record already exists.
    """

    async def get(self, key: str) -> Result[IdempotencyRecord[T, Any] | None, StoreError]: ...

    async def set_pending(
        self, key: str, ttl: timedelta | None, input_hash: str | None = None
    ) -> Result[bool, StoreError]: ...

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]: ...

    async def set_failed(
        self, key: str, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]: ...

    async def delete(self, key: str) -> Result[bool, StoreError]: ...


class MemoryStore[T]:
    """
    In-memory store for a single process.

    Records are replaced wholesale (frozen records), guarded by one lock.
    """

    def __init__(self) -> None:
        self._records: dict[str, IdempotencyRecord[T, Any]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> IdempotencyRecord[T, Any] | None:
        record = self._records.get(key)
        if record is not None and record.is_expired:
            del self._records[key]
            return None
        return record

    async def get(self, key: str) -> Result[IdempotencyRecord[T, Any] | None, StoreError]:
        async with self._lock:
            return Ok(self._live(key))

    async def set_pending(
        self, key: str, ttl: timedelta | None, input_hash: str | None = None
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if self._live(key) is not None:
                return Ok(False)
            now = datetime.now(timezone.utc)
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                error=None,
                created_at=now,
                expires_at=now + ttl if ttl else None,
                input_hash=input_hash,
            )
            return Ok(True)

    async def _finish(
        self, key: str, state: RecordState, value: Any, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return Error(StoreError(f"No pending record for key: {key}"))
            self._records[key] = IdempotencyRecord(
                key=key,
                state=state,
                value=value,
                error=error,
                created_at=existing.created_at,
                expires_at=datetime.now(timezone.utc) + ttl if ttl else None,
                input_hash=existing.input_hash,
            )
            return Ok(None)

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        return await self._finish(key, RecordState.COMPLETED, value, None, ttl)

    async def set_failed(
        self, key: str, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        return await self._finish(key, RecordState.FAILED, None, error, ttl)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)


type StoreAny = Store[Any]


__all__ = ("StoreError", "Store", "StoreAny", "MemoryStore")
