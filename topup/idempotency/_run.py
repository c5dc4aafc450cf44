"""
Idempotent execution.

    fetch record
      ├─ other input (hash diff) → INPUT_MISMATCH, pending or completed
      ├─ COMPLETED               → cached value
      ├─ FAILED                  → cached EXECUTION error
      ├─ PENDING                 → poll until settled
      └─ none / expired          → claim slot, execute, record outcome
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from topup.idempotency._policy import Policy
from topup.idempotency._store import StoreAny, StoreError
from topup.idempotency._types import (
    IdempotencyError,
    IdempotencyErrorKind,
    IdempotencyRecord,
    IdempotencyResult,
    RecordState,
)

logger = structlog.get_logger(__name__)

type Operation[T, E] = Callable[[], Awaitable[Result[T, E]]]


def _store_failure[E](err: StoreError) -> Result[Any, IdempotencyError[E]]:
    return Error(IdempotencyError(IdempotencyErrorKind.STORE_ERROR, err.message))


def _from_record[T, E](
    record: IdempotencyRecord[Any, Any], key: str, input_hash: str | None
) -> Result[IdempotencyResult[T], IdempotencyError[E]] | None:
    """Outcome of a settled record, None while pending with the same input."""
    if (
        record.state is not RecordState.FAILED
        and input_hash is not None
        and record.input_hash not in (None, input_hash)
    ):
        return Error(
            IdempotencyError(
                IdempotencyErrorKind.INPUT_MISMATCH,
                f"Key collision: {key} (different input)",
            )
        )
    match record.state:
        case RecordState.COMPLETED:
            return Ok(IdempotencyResult(value=record.value, from_cache=True, key=key))
        case RecordState.FAILED:
            return Error(
                IdempotencyError(
                    IdempotencyErrorKind.EXECUTION, "Cached failure", record.error
                )
            )
        case RecordState.PENDING:
            return None


async def _wait_pending[T, E](
    key: str, store: StoreAny, policy: Policy, input_hash: str | None
) -> Result[IdempotencyResult[T], IdempotencyError[E]]:
    try:
        async with asyncio.timeout(policy.wait_timeout.total_seconds()):
            while True:
                await asyncio.sleep(policy.poll_interval.total_seconds())
                match await store.get(key):
                    case Error(err):
                        return _store_failure(err)
                    case Ok(None):
                        return Error(
                            IdempotencyError(
                                IdempotencyErrorKind.EXECUTION,
                                "Pending operation was abandoned",
                            )
                        )
                    case Ok(record):
                        settled = _from_record(record, key, input_hash)
                        if settled is not None:
                            return settled
    except TimeoutError:
        return Error(
            IdempotencyError(
                IdempotencyErrorKind.TIMEOUT, "Timeout waiting for pending operation"
            )
        )


async def run_idempotent[T, E](
    key: str,
    operation: Operation[T, E],
    store: StoreAny,
    policy: Policy,
    input_hash: str | None = None,
) -> Result[IdempotencyResult[T], IdempotencyError[E]]:
    """Run `operation` at most once per live key."""
    match await store.get(key):
        case Error(err):
            return _store_failure(err)
        case Ok(None):
            pass
        case Ok(record):
            settled = _from_record(record, key, input_hash)
            if settled is not None:
                logger.debug("idempotency.replayed", key=key, state=record.state.name)
                return settled
            return await _wait_pending(key, store, policy, input_hash)

    match await store.set_pending(key, policy.ttl, input_hash):
        case Error(err):
            return _store_failure(err)
        case Ok(False):
            # Lost the race to another caller between get and set
            return await _wait_pending(key, store, policy, input_hash)
        case Ok(_):
            pass

    try:
        outcome = await operation()
    except BaseException:
        # Release the slot, then let the exception (or cancellation) through
        await store.delete(key)
        raise

    match outcome:
        case Ok(value):
            match await store.set_completed(key, value, policy.ttl):
                case Error(err):
                    return _store_failure(err)
                case Ok(_):
                    return Ok(IdempotencyResult(value=value, from_cache=False, key=key))
        case Error(e):
            if policy.remember_failures:
                await store.set_failed(key, e, policy.ttl)
            else:
                await store.delete(key)
            return Error(
                IdempotencyError(IdempotencyErrorKind.EXECUTION, "Operation returned Error", e)
            )


__all__ = ("Operation", "run_idempotent")
