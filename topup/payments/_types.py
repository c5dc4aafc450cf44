"""
Payment types: methods, capabilities, attempts, details, errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto


class Capability(Enum):
    """
    REDIRECT:      create → external approval page → return → capture
    DIRECT_SUBMIT: validate locally, then a single submit
    DISABLED:      selectable but inert, every use reports unavailable
    """

    REDIRECT = auto()
    DIRECT_SUBMIT = auto()
    DISABLED = auto()


class PaymentMethod(Enum):
    PAYPAL = "paypal"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    ECPAY = "ecpay"


class PaymentOutcome(Enum):
    PENDING = auto()
    REDIRECTED = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass(frozen=True, slots=True)
class PaymentAttempt:
    """One attempt to pay one order. gateway_order_id is the redirect token."""

    order_id: str
    method: PaymentMethod
    outcome: PaymentOutcome
    gateway_order_id: str | None = None
    transaction_id: str | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class CaptureRequest:
    """Gateway return for one order: the approval token the buyer came back with."""

    order_id: str
    gateway_token: str


# ═══════════════════════════════════════════════════════════════════════════════
# Direct-submit details
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CardDetails:
    number: str = field(repr=False)
    expiry: str
    cvv: str = field(repr=False)
    holder_name: str

    @property
    def last4(self) -> str:
        digits = "".join(self.number.split())
        return digits[-4:]

    def to_wire(self) -> dict[str, str]:
        return {
            "cardNumber": "".join(self.number.split()),
            "expiryDate": self.expiry,
            "cvv": self.cvv,
            "cardholderName": self.holder_name,
        }


@dataclass(frozen=True, slots=True)
class BankDetails:
    account_number: str = field(repr=False)
    bank_code: str
    holder_name: str

    def to_wire(self) -> dict[str, str]:
        return {
            "accountNumber": self.account_number,
            "bankCode": self.bank_code,
            "accountHolder": self.holder_name,
        }


type PaymentDetails = CardDetails | BankDetails


@dataclass(frozen=True, slots=True)
class DirectPayment:
    order_id: str
    amount: Decimal
    currency: str
    details: PaymentDetails


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class GatewayErrorKind(Enum):
    VALIDATION = auto()  # Local field validation, never sent
    REJECTED = auto()  # Gateway declined or capture incomplete
    UNAVAILABLE = auto()  # Disabled method
    TIMEOUT = auto()
    ABORTED = auto()
    NETWORK = auto()
    UNAUTHORIZED = auto()
    SERVER = auto()


@dataclass(frozen=True, slots=True)
class GatewayError:
    """field names the offending input for VALIDATION errors."""

    kind: GatewayErrorKind
    message: str
    status: int | None = None
    field: str | None = None


__all__ = (
    "Capability",
    "PaymentMethod",
    "PaymentOutcome",
    "PaymentAttempt",
    "CaptureRequest",
    "CardDetails",
    "BankDetails",
    "PaymentDetails",
    "DirectPayment",
    "GatewayErrorKind",
    "GatewayError",
)
