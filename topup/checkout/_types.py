"""
Checkout types: steps, form data, state snapshot, errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto

from topup.orders import Denomination, Game, Order
from topup.payments import PaymentAttempt, PaymentMethod


class Step(Enum):
    SELECTING_PRODUCT = auto()
    ENTERING_CREDENTIALS = auto()
    REVIEWING_ORDER = auto()
    SUBMITTING = auto()
    AWAITING_PAYMENT_METHOD = auto()
    REDIRECTING_TO_GATEWAY = auto()
    CAPTURING_PAYMENT = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (Step.COMPLETED, Step.CANCELLED)


@dataclass(frozen=True, slots=True)
class FormData:
    """What the customer typed. Credentials never leave this object except in the create call."""

    username: str = ""
    password: str = field(default="", repr=False)
    email: str = ""
    phone: str | None = None
    quantity: int = 1
    notes: str | None = None


class CheckoutErrorKind(Enum):
    VALIDATION = auto()  # Blocks locally, nothing sent
    AUTH = auto()  # Session invalid, re-authenticate
    TIMEOUT = auto()  # Retry affordance; step did not advance
    ABORTED = auto()
    NETWORK = auto()
    GATEWAY = auto()  # Payment rejected
    SERVER = auto()  # Backend 4xx/5xx, message verbatim
    NOT_FOUND = auto()
    UNAVAILABLE = auto()  # Disabled payment method
    CONFLICT = auto()  # Duplicate submission while one is in flight
    ILLEGAL_TRANSITION = auto()
    STALE = auto()  # Result arrived after the checkout moved on
    STORAGE = auto()  # Redirect store failure


@dataclass(frozen=True, slots=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    status: int | None = None
    field: str | None = None


@dataclass(frozen=True, slots=True)
class CheckoutState:
    """
    Snapshot owned by one CheckoutOrchestrator.

    version increments on every transition; async steps compare it
    to drop results that arrive after the checkout moved on.
    """

    step: Step = Step.SELECTING_PRODUCT
    selected_game: Game | None = None
    selected_denomination: Denomination | None = None
    form: FormData = field(default_factory=FormData)
    submission_in_flight: bool = False
    order: Order | None = None
    method: PaymentMethod | None = None
    attempt: PaymentAttempt | None = None
    approval_url: str | None = None
    last_error: CheckoutError | None = None
    version: int = 0

    @property
    def order_id(self) -> str | None:
        return self.order.id if self.order is not None else None


@dataclass(frozen=True, slots=True)
class PendingRedirect:
    """What survives the browser round trip to the gateway."""

    order_id: str
    method: PaymentMethod
    created_at: datetime
    checkout_id: str | None = None


@dataclass(frozen=True, slots=True)
class CheckoutOutcome:
    """Result of resuming a checkout after the gateway redirect."""

    order_id: str
    step: Step
    attempt: PaymentAttempt | None = None
    order: Order | None = None
    error: CheckoutError | None = None


__all__ = (
    "Step",
    "FormData",
    "CheckoutErrorKind",
    "CheckoutError",
    "CheckoutState",
    "PendingRedirect",
    "CheckoutOutcome",
)
