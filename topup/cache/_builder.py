"""
Read-through cache: fluent builder over tiers and a backend read.

A miss falls through to the backend read; only Ok values are stored.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from topup.cache._types import Tier, CacheResult

logger = structlog.get_logger(__name__)

type KeyFn[K] = Callable[[K], str]


# ═══════════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Cache[K, T, E]:
    """
    Fluent cache builder.

    Example:
        orders = (
            cache(lambda oid: f"order:{oid}", repo.fetch_order)
            .tier(LocalTier(max_size=128, ttl=30))
            .build()
        )
    """

    key_of: KeyFn[K]
    source: Callable[[K], LazyCoroResult[T, E]]
    tiers: tuple[Tier[T], ...] = ()

    def tier(self, t: Tier[T]) -> Cache[K, T, E]:
        """Append a tier; earlier tiers are consulted first."""
        return replace(self, tiers=(*self.tiers, t))

    def build(self) -> CacheExecutor[K, T, E]:
        if not self.tiers:
            raise ValueError("at least one tier() is required")
        return CacheExecutor(self.key_of, self.source, self.tiers)


# ═══════════════════════════════════════════════════════════════════════════════
# Executor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class CacheExecutor[K, T, E]:
    """Compiled read-through cache."""

    key_of: KeyFn[K]
    source: Callable[[K], LazyCoroResult[T, E]]
    tiers: tuple[Tier[T], ...]

    async def _lookup(self, cache_key: str) -> CacheResult[T] | None:
        for t in self.tiers:
            try:
                value = await t.get(cache_key)
            except Exception:
                # A broken tier degrades to a miss
                logger.warning("cache.tier_read_failed", tier=t.name, key=cache_key, exc_info=True)
                continue
            if value is not None:
                return CacheResult(value=value, hit=True, tier=t.name)
        return None

    async def _populate(self, cache_key: str, value: T) -> None:
        for t in self.tiers:
            try:
                await t.set(cache_key, value)
            except Exception:
                logger.warning("cache.tier_write_failed", tier=t.name, key=cache_key, exc_info=True)

    def get(self, key: K) -> LazyCoroResult[CacheResult[T], E]:
        """Tiers in order, then the backend read. Errors are never cached."""
        cache_key = self.key_of(key)

        async def execute() -> Result[CacheResult[T], E]:
            found = await self._lookup(cache_key)
            if found is not None:
                return Ok(found)
            match await self.source(key):
                case Ok(value):
                    await self._populate(cache_key, value)
                    logger.debug("cache.filled", key=cache_key)
                    return Ok(CacheResult(value=value, hit=False, tier=None))
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    async def put(self, key: K, value: T) -> None:
        """Seed every tier with a value the backend just returned."""
        await self._populate(self.key_of(key), value)

    async def invalidate(self, key: K) -> bool:
        cache_key = self.key_of(key)
        removed = [await t.delete(cache_key) for t in self.tiers]
        return any(removed)


def cache[K, T, E](
    key: KeyFn[K],
    fetch: Callable[[K], LazyCoroResult[T, E]],
) -> Cache[K, T, E]:
    """Create a cache builder from a key function and a backend read."""
    return Cache(key_of=key, source=fetch)


__all__ = ("KeyFn", "Cache", "CacheExecutor", "cache")
