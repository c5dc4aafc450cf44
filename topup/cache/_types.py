"""
Cache types: tier protocol, in-memory LRU tier, lookup result.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Protocol


# ═══════════════════════════════════════════════════════════════════════════════
# Tier Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Tier[T](Protocol):
    """
    Cache tier protocol.

    A tier only stores what the backend already returned; it never
    computes values of its own.
    """

    @property
    def name(self) -> str: ...

    async def get(self, key: str) -> T | None:
        """Get value. Returns None on miss or expiry."""
        ...

    async def set(self, key: str, value: T) -> None: ...

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if existed."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Local Tier: In-memory LRU with optional TTL
# ═══════════════════════════════════════════════════════════════════════════════


class LocalTier[T]:
    """
    In-memory LRU tier.

    Example:
        catalog_tier = LocalTier[Catalog](max_size=1, ttl=60)
    """

    def __init__(self, max_size: int = 256, ttl: float | None = None) -> None:
        self._max_size = max_size
        self._ttl = ttl
        self._entries: OrderedDict[str, tuple[T, float | None]] = OrderedDict()

    @property
    def name(self) -> str:
        return "local"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: T) -> None:
        expires_at = time.monotonic() + self._ttl if self._ttl is not None else None
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Result
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheResult[T]:
    """Lookup result with hit metadata."""

    value: T
    hit: bool
    tier: str | None


__all__ = (
    "Tier",
    "LocalTier",
    "CacheResult",
)
