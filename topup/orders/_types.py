"""
Order types: catalog, orders, order errors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, auto

from kungfu import Result, Ok, Error

from topup._types import to_money

ALLOWED_QUANTITIES: tuple[int, ...] = (1, 2, 3, 4, 5, 10)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Game:
    id: str
    name: str
    region_code: str | None = None
    description: str | None = None
    is_archived: bool = False


@dataclass(frozen=True, slots=True)
class Denomination:
    """A purchasable unit of in-game currency tied to one game and one platform."""

    id: str
    game_id: str
    name: str
    display_price: Decimal
    platform_id: str | None = None
    is_available: bool = True
    is_archived: bool = False

    @property
    def purchasable(self) -> bool:
        return self.is_available and not self.is_archived


@dataclass(frozen=True, slots=True)
class Catalog:
    games: tuple[Game, ...] = ()
    denominations: tuple[Denomination, ...] = ()

    def game(self, game_id: str) -> Game | None:
        return next((g for g in self.games if g.id == game_id), None)

    def denomination(self, denomination_id: str) -> Denomination | None:
        return next((d for d in self.denominations if d.id == denomination_id), None)

    def denominations_for(self, game_id: str) -> tuple[Denomination, ...]:
        return tuple(
            d for d in self.denominations if d.game_id == game_id and d.purchasable
        )

    @property
    def active_games(self) -> tuple[Game, ...]:
        return tuple(g for g in self.games if not g.is_archived)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    @property
    def settled(self) -> bool:
        return self in (PaymentStatus.CAPTURED, PaymentStatus.PAID)


@dataclass(frozen=True, slots=True)
class GameCredentials:
    """Game-login credentials. Write-only: sent once, never read back."""

    username: str
    password: str = field(repr=False)


def order_total(price_per_unit: Decimal, quantity: int) -> Decimal:
    return to_money(price_per_unit * quantity)


@dataclass(frozen=True, slots=True)
class NewOrder:
    """Order creation request, built at submit time."""

    game_id: str
    denomination_id: str
    credentials: GameCredentials
    customer_email: str
    quantity: int
    price_per_unit: Decimal
    customer_phone: str | None = None
    notes: str | None = None

    @property
    def total_price(self) -> Decimal:
        return order_total(self.price_per_unit, self.quantity)


@dataclass(frozen=True, slots=True)
class Order:
    """Backend order record. Totals are the backend's, checked on decode."""

    id: str
    game_id: str
    denomination_id: str
    customer_email: str
    quantity: int
    price_per_unit: Decimal
    total_price: Decimal
    status: OrderStatus
    created_at: datetime
    payment_status: PaymentStatus = PaymentStatus.PENDING
    customer_phone: str | None = None
    payment_gateway: str | None = None
    gateway_transaction_id: str | None = None
    paid_at: datetime | None = None
    fulfilled_at: datetime | None = None
    notes: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status.settled or self.paid_at is not None


# ═══════════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════════


def validate_email(email: str) -> Result[str, str]:
    cleaned = email.strip()
    if not EMAIL_PATTERN.match(cleaned):
        return Error("Please enter a valid email address")
    return Ok(cleaned)


def validate_quantity(quantity: int) -> Result[int, str]:
    if quantity not in ALLOWED_QUANTITIES:
        allowed = ", ".join(str(q) for q in ALLOWED_QUANTITIES)
        return Error(f"Quantity must be one of {allowed}")
    return Ok(quantity)


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class OrderErrorKind(Enum):
    VALIDATION = auto()
    NOT_FOUND = auto()
    UNAUTHORIZED = auto()
    TIMEOUT = auto()
    ABORTED = auto()
    NETWORK = auto()
    SERVER = auto()


@dataclass(frozen=True, slots=True)
class OrderError:
    kind: OrderErrorKind
    message: str
    status: int | None = None


__all__ = (
    "ALLOWED_QUANTITIES",
    "EMAIL_PATTERN",
    "Game",
    "Denomination",
    "Catalog",
    "OrderStatus",
    "PaymentStatus",
    "GameCredentials",
    "order_total",
    "NewOrder",
    "Order",
    "validate_email",
    "validate_quantity",
    "OrderErrorKind",
    "OrderError",
)
