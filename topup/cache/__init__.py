"""
Cache: client-side read-through cache for backend reads.

    from topup import cache as C

    products = (
        C.cache(lambda _: "catalog", fetch_catalog)
        .tier(C.LocalTier(max_size=1, ttl=60))
        .build()
    )
    result = await products.get(None)
"""

from topup.cache._types import Tier, LocalTier, CacheResult
from topup.cache._builder import KeyFn, Cache, CacheExecutor, cache

__all__ = (
    "Tier",
    "LocalTier",
    "CacheResult",
    "KeyFn",
    "Cache",
    "CacheExecutor",
    "cache",
)
