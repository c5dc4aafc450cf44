"""
Payment gateway adapters.

    PayPalGateway        REDIRECT       create → approval url, capture on return
    CreditCardGateway    DIRECT_SUBMIT  validate, POST /payments/process once
    BankTransferGateway  DIRECT_SUBMIT  validate, POST /payments/process once
    EcpayGateway         DISABLED       placeholder, always "temporarily unavailable"

Capture runs once per order. A repeat call with the same gateway token
returns the recorded COMPLETED attempt without another gateway round trip;
a different token for an order already captured (or capturing) is REJECTED.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import timedelta
from typing import Any, Protocol

import httpx
import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from topup.idempotency import (
    IdempotencyError,
    IdempotencyErrorKind,
    IdempotentExecutor,
    MemoryStore,
    Policy,
    StoreAny,
    idempotent,
)
from topup.request import (
    Budget,
    CancelToken,
    RequestError,
    RequestErrorKind,
    RequestExecutor,
    Response,
    extract_message,
)
from topup.payments._types import (
    BankDetails,
    Capability,
    CaptureRequest,
    CardDetails,
    DirectPayment,
    GatewayError,
    GatewayErrorKind,
    PaymentAttempt,
    PaymentDetails,
    PaymentMethod,
    PaymentOutcome,
)
from topup.payments._validate import validate_amount, validate_bank, validate_card

logger = structlog.get_logger(__name__)

UNAVAILABLE_MESSAGE = "This payment method is temporarily unavailable, please choose another"
_SUCCESS_STATUSES = frozenset({"COMPLETED", "CAPTURED", "PAID", "SUCCESS", "SUCCEEDED"})


# ═══════════════════════════════════════════════════════════════════════════════
# Error & status mapping
# ═══════════════════════════════════════════════════════════════════════════════


def gateway_error_from(err: RequestError) -> GatewayError:
    match err.kind:
        case RequestErrorKind.VALIDATION:
            return GatewayError(GatewayErrorKind.VALIDATION, err.message)
        case RequestErrorKind.TIMEOUT:
            return GatewayError(GatewayErrorKind.TIMEOUT, err.message)
        case RequestErrorKind.ABORTED:
            return GatewayError(GatewayErrorKind.ABORTED, err.message)
        case RequestErrorKind.NETWORK:
            return GatewayError(GatewayErrorKind.NETWORK, err.message)
        case RequestErrorKind.HTTP if err.status in (401, 403):
            return GatewayError(GatewayErrorKind.UNAUTHORIZED, err.message, err.status)
        case RequestErrorKind.HTTP if err.status is not None and err.status < 500:
            return GatewayError(GatewayErrorKind.REJECTED, err.message, err.status)
        case _:
            return GatewayError(GatewayErrorKind.SERVER, err.message, err.status)


def is_success(payload: dict[str, Any]) -> bool:
    """`success: true`, or a settled `status`."""
    if payload.get("success") is False:
        return False
    status = payload.get("status")
    if isinstance(status, str) and status.upper() in _SUCCESS_STATUSES:
        return True
    return payload.get("success") is True


def _idempotency_failure(err: IdempotencyError[GatewayError]) -> GatewayError:
    match err.kind:
        case IdempotencyErrorKind.EXECUTION if err.original_error is not None:
            return err.original_error
        case IdempotencyErrorKind.INPUT_MISMATCH:
            return GatewayError(
                GatewayErrorKind.REJECTED, "This order is already being paid through another PayPal approval"
            )
        case IdempotencyErrorKind.TIMEOUT:
            return GatewayError(GatewayErrorKind.TIMEOUT, "Payment is still being confirmed, please retry")
        case _:
            return GatewayError(GatewayErrorKind.SERVER, err.message)


# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class Gateway(Protocol):
    @property
    def method(self) -> PaymentMethod: ...

    @property
    def capability(self) -> Capability: ...

    @property
    def label(self) -> str: ...


class RedirectGateway(Gateway, Protocol):
    def create(
        self, order_id: str, *, cancel: CancelToken | None = None
    ) -> LazyCoroResult[str, GatewayError]: ...

    def capture(self, order_id: str, gateway_token: str) -> LazyCoroResult[PaymentAttempt, GatewayError]: ...


class DirectGateway(Gateway, Protocol):
    def validate(self, details: PaymentDetails) -> Result[PaymentDetails, GatewayError]: ...

    def submit(
        self, payment: DirectPayment, *, cancel: CancelToken | None = None
    ) -> LazyCoroResult[PaymentAttempt, GatewayError]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Redirect: PayPal
# ═══════════════════════════════════════════════════════════════════════════════


class PayPalGateway:
    """
    Example:
        gateway = PayPalGateway(executor)
        approval_url = await gateway.create(order.id)
        # ... browser round trip ...
        attempt = await gateway.capture(order.id, token)
    """

    method = PaymentMethod.PAYPAL
    capability = Capability.REDIRECT
    label = "PayPal"

    def __init__(
        self,
        executor: RequestExecutor,
        *,
        store: StoreAny | None = None,
        policy: Policy | None = None,
    ) -> None:
        self._executor = executor
        self._captures: IdempotentExecutor[CaptureRequest, PaymentAttempt, GatewayError] = (
            idempotent(self._capture_once)
            .key(lambda req: f"paypal:capture:{req.order_id}")
            .fingerprint(lambda req: req.gateway_token)
            .store(store if store is not None else MemoryStore())
            .policy(policy or Policy().with_ttl(hours=24))
            .build()
        )

    def create(
        self, order_id: str, *, cancel: CancelToken | None = None
    ) -> LazyCoroResult[str, GatewayError]:
        """POST /payments/paypal/create → approval url, with the return and cancel targets."""

        async def execute() -> Result[str, GatewayError]:
            if not order_id:
                return Error(GatewayError(GatewayErrorKind.VALIDATION, "Order id is required", field="order_id"))
            config = self._executor.config
            result = await self._executor.post(
                "/payments/paypal/create",
                {
                    "orderId": order_id,
                    "returnUrl": str(httpx.URL(config.return_url, params={"orderId": order_id})),
                    "cancelUrl": str(httpx.URL(config.cancel_url, params={"orderId": order_id})),
                },
                budget=Budget.PAYMENT,
                cancel=cancel,
            )
            match result:
                case Error(err):
                    return Error(gateway_error_from(err))
                case Ok(resp):
                    payload = resp.json_object()

            url = payload.get("approvalUrl") or payload.get("approval_url")
            if not isinstance(url, str) or not url:
                return Error(GatewayError(GatewayErrorKind.SERVER, "Gateway did not return an approval url"))
            logger.info("paypal.created", order_id=order_id)
            return Ok(url)

        return LazyCoroResult(execute)

    def _capture_once(self, req: CaptureRequest) -> LazyCoroResult[PaymentAttempt, GatewayError]:
        order_id, gateway_token = req.order_id, req.gateway_token

        async def execute() -> Result[PaymentAttempt, GatewayError]:
            result = await self._executor.post(
                "/payments/paypal/capture",
                {"orderId": order_id, "gatewayToken": gateway_token},
                budget=Budget.PAYMENT,
            )
            match result:
                case Error(err):
                    return Error(gateway_error_from(err))
                case Ok(resp):
                    payload = resp.json_object()

            if not is_success(payload):
                message = extract_message(payload, "Payment capture incomplete")
                logger.warning("paypal.capture_rejected", order_id=order_id, status=payload.get("status"))
                return Error(GatewayError(GatewayErrorKind.REJECTED, message))

            logger.info("paypal.captured", order_id=order_id)
            return Ok(
                PaymentAttempt(
                    order_id=order_id,
                    method=self.method,
                    outcome=PaymentOutcome.COMPLETED,
                    gateway_order_id=gateway_token,
                    transaction_id=_transaction_id(payload),
                    message=payload.get("message") if isinstance(payload.get("message"), str) else None,
                )
            )

        return LazyCoroResult(execute)

    def capture(self, order_id: str, gateway_token: str) -> LazyCoroResult[PaymentAttempt, GatewayError]:
        """POST /payments/paypal/capture. Repeat calls re-confirm COMPLETED."""

        async def execute() -> Result[PaymentAttempt, GatewayError]:
            if not order_id or not gateway_token:
                return Error(
                    GatewayError(
                        GatewayErrorKind.VALIDATION,
                        "Missing order id or gateway token",
                        field="token" if order_id else "order_id",
                    )
                )
            result = await self._captures.run(CaptureRequest(order_id, gateway_token))
            match result:
                case Ok(done):
                    if done.from_cache:
                        logger.info("paypal.capture_replayed", order_id=order_id)
                    return Ok(done.value)
                case Error(err):
                    return Error(_idempotency_failure(err))

        return LazyCoroResult(execute)


def _transaction_id(payload: dict[str, Any]) -> str | None:
    for key in ("transaction_id", "transactionId", "paypal_order_id"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Direct submit: card / bank transfer
# ═══════════════════════════════════════════════════════════════════════════════


class DirectSubmitGateway:
    """Validate locally, then exactly one POST /payments/process under the PAYMENT budget."""

    capability = Capability.DIRECT_SUBMIT

    def __init__(
        self,
        executor: RequestExecutor,
        method: PaymentMethod,
        label: str,
        validator: Callable[[Any], Result[PaymentDetails, GatewayError]],
        details_type: type,
    ) -> None:
        self._executor = executor
        self.method = method
        self.label = label
        self._validator = validator
        self._details_type = details_type

    def validate(self, details: PaymentDetails) -> Result[PaymentDetails, GatewayError]:
        if not isinstance(details, self._details_type):
            return Error(
                GatewayError(
                    GatewayErrorKind.VALIDATION,
                    f"{self.label} needs {self._details_type.__name__}",
                    field="details",
                )
            )
        return self._validator(details)

    def submit(
        self, payment: DirectPayment, *, cancel: CancelToken | None = None
    ) -> LazyCoroResult[PaymentAttempt, GatewayError]:
        async def execute() -> Result[PaymentAttempt, GatewayError]:
            match self.validate(payment.details):
                case Error(e):
                    return Error(e)
                case Ok(details):
                    pass
            match validate_amount(payment.amount):
                case Error(e):
                    return Error(e)
                case Ok(_):
                    pass

            result = await self._executor.post(
                "/payments/process",
                {
                    "orderId": payment.order_id,
                    "paymentMethod": self.method.value,
                    "amount": float(payment.amount),
                    "currency": payment.currency,
                    "paymentDetails": details.to_wire(),
                },
                budget=Budget.PAYMENT,
                cancel=cancel,
            )
            return _direct_outcome(payment.order_id, self.method, result)

        return LazyCoroResult(execute)


def _direct_outcome(
    order_id: str, method: PaymentMethod, result: Result[Response, RequestError]
) -> Result[PaymentAttempt, GatewayError]:
    match result:
        case Error(err):
            logger.warning("payment.submit_failed", order_id=order_id, method=method.value, kind=err.kind.name)
            return Error(gateway_error_from(err))
        case Ok(resp):
            payload = resp.json_object()

    if not is_success(payload):
        return Error(GatewayError(GatewayErrorKind.REJECTED, extract_message(payload, "Payment processing failed")))

    logger.info("payment.completed", order_id=order_id, method=method.value)
    return Ok(
        PaymentAttempt(
            order_id=order_id,
            method=method,
            outcome=PaymentOutcome.COMPLETED,
            transaction_id=_transaction_id(payload),
            message=payload.get("message") if isinstance(payload.get("message"), str) else None,
        )
    )


class CreditCardGateway(DirectSubmitGateway):
    def __init__(self, executor: RequestExecutor) -> None:
        super().__init__(executor, PaymentMethod.CREDIT_CARD, "Credit card", validate_card, CardDetails)


class BankTransferGateway(DirectSubmitGateway):
    def __init__(self, executor: RequestExecutor) -> None:
        super().__init__(executor, PaymentMethod.BANK_TRANSFER, "Bank transfer", validate_bank, BankDetails)


# ═══════════════════════════════════════════════════════════════════════════════
# Disabled: ECPay placeholder
# ═══════════════════════════════════════════════════════════════════════════════


class EcpayGateway:
    """Listed for selection; every use reports the method as unavailable."""

    method = PaymentMethod.ECPAY
    capability = Capability.DISABLED
    label = "ECPay (under maintenance)"

    def unavailable(self) -> GatewayError:
        return GatewayError(GatewayErrorKind.UNAVAILABLE, UNAVAILABLE_MESSAGE)


type AnyGateway = PayPalGateway | DirectSubmitGateway | EcpayGateway


# ═══════════════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════════════


class GatewayRegistry:
    """Method → adapter lookup, in display order."""

    def __init__(self, gateways: Iterable[AnyGateway]) -> None:
        self._gateways: dict[PaymentMethod, AnyGateway] = {g.method: g for g in gateways}

    def get(self, method: PaymentMethod) -> AnyGateway | None:
        return self._gateways.get(method)

    def selectable_methods(self) -> tuple[PaymentMethod, ...]:
        """Every registered method, disabled ones included."""
        return tuple(self._gateways)

    def enabled_methods(self) -> tuple[PaymentMethod, ...]:
        return tuple(m for m, g in self._gateways.items() if g.capability != Capability.DISABLED)


def default_gateways(
    executor: RequestExecutor,
    *,
    capture_store: StoreAny | None = None,
    capture_ttl: timedelta | None = None,
) -> GatewayRegistry:
    policy = Policy().with_ttl(seconds=capture_ttl.total_seconds()) if capture_ttl else Policy().with_ttl(hours=24)
    return GatewayRegistry(
        (
            CreditCardGateway(executor),
            PayPalGateway(executor, store=capture_store, policy=policy),
            BankTransferGateway(executor),
            EcpayGateway(),
        )
    )


__all__ = (
    "UNAVAILABLE_MESSAGE",
    "gateway_error_from",
    "is_success",
    "Gateway",
    "RedirectGateway",
    "DirectGateway",
    "PayPalGateway",
    "DirectSubmitGateway",
    "CreditCardGateway",
    "BankTransferGateway",
    "EcpayGateway",
    "AnyGateway",
    "GatewayRegistry",
    "default_gateways",
)
