"""
Idempotency policy: how long outcomes live, how long a duplicate caller waits.

A caller that finds the same key already executing polls until that run
settles and shares its outcome. Gateway capture after a double redirect
relies on this.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Immutable policy; each `with_*` returns a new one.

    Example:
        capture_policy = Policy().with_ttl(hours=24).with_wait_timeout(seconds=45)

    ttl=None keeps completed outcomes until the store is cleared.
    """

    ttl: timedelta | None = None
    wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: timedelta = timedelta(milliseconds=50)
    # Off: a declined capture can be retried with the same key
    remember_failures: bool = False

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
    ) -> Policy:
        span = timedelta(seconds=seconds or 0, minutes=minutes or 0, hours=hours or 0)
        return replace(self, ttl=span if span > timedelta(0) else None)

    def with_wait_timeout(self, *, seconds: float) -> Policy:
        """Bound on how long a duplicate caller polls a pending run."""
        return replace(self, wait_timeout=timedelta(seconds=seconds))

    def with_remember_failures(self, remember: bool = True) -> Policy:
        return replace(self, remember_failures=remember)


__all__ = ("Policy",)
