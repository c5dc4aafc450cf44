"""
Wire DTOs for the gateway return routes.
"""

from __future__ import annotations

from decimal import Decimal

from kungfu import Result, Ok, Error
from pydantic import BaseModel, ConfigDict, Field

from topup.checkout import CheckoutError, CheckoutErrorKind, CheckoutOutcome

_STATUS_CODES: dict[CheckoutErrorKind, int] = {
    CheckoutErrorKind.VALIDATION: 400,
    CheckoutErrorKind.AUTH: 401,
    CheckoutErrorKind.NOT_FOUND: 404,
    CheckoutErrorKind.CONFLICT: 409,
    CheckoutErrorKind.ILLEGAL_TRANSITION: 409,
    CheckoutErrorKind.STALE: 409,
    CheckoutErrorKind.GATEWAY: 402,
    CheckoutErrorKind.UNAVAILABLE: 503,
    CheckoutErrorKind.TIMEOUT: 504,
    CheckoutErrorKind.NETWORK: 502,
    CheckoutErrorKind.ABORTED: 499,
    CheckoutErrorKind.SERVER: 502,
    CheckoutErrorKind.STORAGE: 500,
}


def status_code_for(error: CheckoutError) -> int:
    return _STATUS_CODES.get(error.kind, 500)


class ReturnIn(BaseModel):
    token: str | None = None
    order_id: str | None = None

    def to_domain(self) -> tuple[str | None, str | None]:
        return self.token, self.order_id


class CancelIn(BaseModel):
    order_id: str | None = None

    def to_domain(self) -> str | None:
        return self.order_id


class OutcomeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str | None = Field(default=None, serialization_alias="orderId")
    status: str
    message: str | None = None
    transaction_id: str | None = Field(default=None, serialization_alias="transactionId")
    payment_status: str | None = Field(default=None, serialization_alias="paymentStatus")
    total_price: Decimal | None = Field(default=None, serialization_alias="totalPrice")

    @classmethod
    def from_domain(cls, result: Result[CheckoutOutcome, CheckoutError]) -> tuple[OutcomeOut, int]:
        """DTO plus the HTTP status it should be served with."""
        match result:
            case Error(err):
                return cls(status="error", message=err.message), status_code_for(err)
            case Ok(outcome):
                pass

        order = outcome.order
        dto = cls(
            order_id=outcome.order_id,
            status=outcome.step.name.lower(),
            message=outcome.error.message if outcome.error is not None else None,
            transaction_id=outcome.attempt.transaction_id if outcome.attempt is not None else None,
            payment_status=order.payment_status.value if order is not None else None,
            total_price=order.total_price if order is not None else None,
        )
        code = status_code_for(outcome.error) if outcome.error is not None else 200
        return dto, code


__all__ = ("status_code_for", "ReturnIn", "CancelIn", "OutcomeOut")
