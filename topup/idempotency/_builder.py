"""
Idempotency builder: fluent API over run_idempotent.

    capture = (
        idempotent(gateway.capture_once)
        .key(lambda req: f"capture:{req.order_id}")
        .fingerprint(lambda req: req.gateway_token)
        .policy(Policy().with_ttl(hours=24))
        .build()
    )
    await capture.run(req)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace

from kungfu import LazyCoroResult, Ok, Result

from topup.idempotency._policy import Policy
from topup.idempotency._run import run_idempotent
from topup.idempotency._store import MemoryStore, StoreAny
from topup.idempotency._types import IdempotencyError, IdempotencyResult

type KeyFn[K] = Callable[[K], str]


@dataclass(slots=True, frozen=True)
class Idempotent[K, T, E]:
    operation: Callable[[K], LazyCoroResult[T, E]]
    key_of: KeyFn[K] | None = None
    fingerprint_of: KeyFn[K] | None = None
    backing: StoreAny | None = None
    rules: Policy = field(default_factory=Policy)

    def key(self, fn: KeyFn[K]) -> Idempotent[K, T, E]:
        return replace(self, key_of=fn)

    def fingerprint(self, fn: KeyFn[K]) -> Idempotent[K, T, E]:
        """Hash the input so a reused key with different input is rejected."""
        return replace(self, fingerprint_of=fn)

    def store(self, s: StoreAny) -> Idempotent[K, T, E]:
        return replace(self, backing=s)

    def policy(self, p: Policy) -> Idempotent[K, T, E]:
        return replace(self, rules=p)

    def build(self) -> IdempotentExecutor[K, T, E]:
        if self.key_of is None:
            raise ValueError("key() is required")
        # No store given: per-executor memory, enough for a single process
        store = self.backing if self.backing is not None else MemoryStore()
        return IdempotentExecutor(self.operation, self.key_of, self.fingerprint_of, store, self.rules)


@dataclass(slots=True, frozen=True)
class IdempotentExecutor[K, T, E]:
    operation: Callable[[K], LazyCoroResult[T, E]]
    key_of: KeyFn[K]
    fingerprint_of: KeyFn[K] | None
    store: StoreAny
    policy: Policy

    def run(self, value: K) -> LazyCoroResult[IdempotencyResult[T], IdempotencyError[E]]:
        key = self.key_of(value)
        fingerprint = self.fingerprint_of(value) if self.fingerprint_of is not None else None

        async def execute() -> Result[IdempotencyResult[T], IdempotencyError[E]]:
            return await run_idempotent(
                key, lambda: self.operation(value), self.store, self.policy, fingerprint
            )

        return LazyCoroResult(execute)

    async def invalidate(self, value: K) -> bool:
        """Forget the outcome for this input; False when nothing was stored."""
        match await self.store.delete(self.key_of(value)):
            case Ok(deleted):
                return deleted
            case _:
                return False


def idempotent[K, T, E](
    operation: Callable[[K], LazyCoroResult[T, E]],
) -> Idempotent[K, T, E]:
    """Wrap an operation for at-most-once execution per key."""
    return Idempotent(operation)


__all__ = ("KeyFn", "Idempotent", "IdempotentExecutor", "idempotent")
