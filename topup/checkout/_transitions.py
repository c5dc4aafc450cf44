"""
Checkout transition table.

    SELECTING_PRODUCT → ENTERING_CREDENTIALS → REVIEWING_ORDER → SUBMITTING
        → AWAITING_PAYMENT_METHOD → REDIRECTING_TO_GATEWAY → CAPTURING_PAYMENT
        → {COMPLETED | FAILED | CANCELLED}

Back-navigation steps one wizard page back. Any pre-payment step (and a
redirect the gateway reports cancelled) may end in CANCELLED. FAILED keeps
the order and allows a fresh payment attempt.
"""

from __future__ import annotations

from kungfu import Result, Ok, Error

from topup.checkout._types import CheckoutError, CheckoutErrorKind, Step

TRANSITIONS: dict[Step, frozenset[Step]] = {
    Step.SELECTING_PRODUCT: frozenset({Step.ENTERING_CREDENTIALS, Step.CANCELLED}),
    Step.ENTERING_CREDENTIALS: frozenset(
        {Step.REVIEWING_ORDER, Step.SELECTING_PRODUCT, Step.CANCELLED}
    ),
    Step.REVIEWING_ORDER: frozenset(
        {Step.SUBMITTING, Step.ENTERING_CREDENTIALS, Step.CANCELLED}
    ),
    Step.SUBMITTING: frozenset(
        {Step.AWAITING_PAYMENT_METHOD, Step.REVIEWING_ORDER, Step.CANCELLED}
    ),
    Step.AWAITING_PAYMENT_METHOD: frozenset(
        {Step.REDIRECTING_TO_GATEWAY, Step.CAPTURING_PAYMENT, Step.CANCELLED}
    ),
    Step.REDIRECTING_TO_GATEWAY: frozenset(
        {Step.CAPTURING_PAYMENT, Step.AWAITING_PAYMENT_METHOD, Step.CANCELLED}
    ),
    Step.CAPTURING_PAYMENT: frozenset({Step.COMPLETED, Step.FAILED}),
    Step.COMPLETED: frozenset(),
    Step.FAILED: frozenset({Step.AWAITING_PAYMENT_METHOD}),
    Step.CANCELLED: frozenset(),
}

_missing = set(Step) - TRANSITIONS.keys()
if _missing:
    raise RuntimeError(f"transition table missing steps: {sorted(s.name for s in _missing)}")

CANCELLABLE: frozenset[Step] = frozenset(
    step for step, targets in TRANSITIONS.items() if Step.CANCELLED in targets
)

BACK: dict[Step, Step] = {
    Step.ENTERING_CREDENTIALS: Step.SELECTING_PRODUCT,
    Step.REVIEWING_ORDER: Step.ENTERING_CREDENTIALS,
}


def can_transition(source: Step, target: Step) -> bool:
    return target in TRANSITIONS[source]


def check_transition(source: Step, target: Step) -> Result[Step, CheckoutError]:
    if can_transition(source, target):
        return Ok(target)
    return Error(
        CheckoutError(
            CheckoutErrorKind.ILLEGAL_TRANSITION,
            f"Cannot move from {source.name} to {target.name}",
        )
    )


__all__ = (
    "TRANSITIONS",
    "CANCELLABLE",
    "BACK",
    "can_transition",
    "check_transition",
)
