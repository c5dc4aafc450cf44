"""
Idempotency: at-most-once execution keyed by string.

    from topup import idempotency as I

    captures = (
        I.idempotent(gateway.capture_once)
        .key(lambda req: f"capture:{req.order_id}")
        .fingerprint(lambda req: req.gateway_token)
        .policy(I.Policy().with_ttl(hours=24))
        .build()
    )
    result = await captures.run(CaptureRequest(order_id, token))

Durable storage: implement I.Store (atomic set_pending) over your database.
"""

from topup.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyErrorKind,
    IdempotencyError,
)
from topup.idempotency._store import StoreError, Store, StoreAny, MemoryStore
from topup.idempotency._policy import Policy
from topup.idempotency._run import Operation, run_idempotent
from topup.idempotency._builder import Idempotent, IdempotentExecutor, idempotent

__all__ = (
    # Types
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyErrorKind",
    "IdempotencyError",
    # Store
    "StoreError",
    "Store",
    "StoreAny",
    "MemoryStore",
    # Policy
    "Policy",
    # Run
    "Operation",
    "run_idempotent",
    # Builder
    "Idempotent",
    "IdempotentExecutor",
    "idempotent",
)
