"""
Checkout: the purchase state machine and redirect resumption.

    from topup import checkout as C

    flow = C.CheckoutOrchestrator(orders, gateways, C.MemoryRedirectStore())
    sub = flow.watch(lambda state: render(state.step))

    match await flow.submit():
        case Error(C.CheckoutError(kind=C.CheckoutErrorKind.CONFLICT)):
            pass  # already submitting
"""

from topup.checkout._types import (
    Step,
    FormData,
    CheckoutErrorKind,
    CheckoutError,
    CheckoutState,
    PendingRedirect,
    CheckoutOutcome,
)
from topup.checkout._transitions import (
    TRANSITIONS,
    CANCELLABLE,
    BACK,
    can_transition,
    check_transition,
)
from topup.checkout._redirects import (
    RedirectStoreError,
    RedirectStore,
    MemoryRedirectStore,
    RedirectBase,
    PendingRedirectRow,
    SQLAlchemyRedirectStore,
)
from topup.checkout._orchestrator import (
    CheckoutOrchestrator,
    checkout_error_from_order,
    checkout_error_from_gateway,
)
from topup.checkout._resume import ReturnHandler

__all__ = (
    # Types
    "Step",
    "FormData",
    "CheckoutErrorKind",
    "CheckoutError",
    "CheckoutState",
    "PendingRedirect",
    "CheckoutOutcome",
    # Transitions
    "TRANSITIONS",
    "CANCELLABLE",
    "BACK",
    "can_transition",
    "check_transition",
    # Redirect store
    "RedirectStoreError",
    "RedirectStore",
    "MemoryRedirectStore",
    "RedirectBase",
    "PendingRedirectRow",
    "SQLAlchemyRedirectStore",
    # Orchestration
    "CheckoutOrchestrator",
    "checkout_error_from_order",
    "checkout_error_from_gateway",
    "ReturnHandler",
)
