"""
ReturnHandler: where the browser lands after the redirect gateway.

The orchestrator that started the redirect is gone by now. The handler
rebuilds one from the redirect store plus a fresh read of the order, then
finishes the capture (or records the cancellation).
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from kungfu import Result, Ok, Error

from topup.config import TopupConfig
from topup.orders import Order, OrderRepository
from topup.payments import GatewayRegistry, PaymentMethod
from topup.checkout._orchestrator import CheckoutOrchestrator, checkout_error_from_order
from topup.checkout._redirects import RedirectStore
from topup.checkout._types import (
    CheckoutError,
    CheckoutErrorKind,
    CheckoutOutcome,
    PendingRedirect,
    Step,
)

logger = structlog.get_logger(__name__)


class ReturnHandler:
    """
    Example:
        handler = ReturnHandler(orders, gateways, redirects, config=config)

        match await handler.handle_return(token="5O190127TN364715T", order_id="ord_42"):
            case Ok(CheckoutOutcome(step=Step.COMPLETED)):
                show_receipt()
            case Ok(CheckoutOutcome(step=Step.FAILED, error=err)):
                offer_retry(err.message)
            case Error(err):
                show(err.message)
    """

    def __init__(
        self,
        orders: OrderRepository,
        gateways: GatewayRegistry,
        redirects: RedirectStore,
        *,
        config: TopupConfig | None = None,
        method: PaymentMethod = PaymentMethod.PAYPAL,
    ) -> None:
        self._orders = orders
        self._gateways = gateways
        self._redirects = redirects
        self._config = config or TopupConfig()
        self._method = method

    async def _load(self, order_id: str) -> Result[PendingRedirect, CheckoutError]:
        match await self._redirects.load(order_id):
            case Error(e):
                logger.error("checkout.redirect_load_failed", order_id=order_id, error=e.message)
                return Error(CheckoutError(CheckoutErrorKind.STORAGE, "Could not resume the payment, please try again"))
            case Ok(None):
                # Already resolved once (or another tab). The gateway and the
                # order record decide what happens next.
                return Ok(PendingRedirect(order_id, self._method, datetime.now(timezone.utc)))
            case Ok(pending):
                if pending.method is not self._method:
                    return Error(
                        CheckoutError(
                            CheckoutErrorKind.VALIDATION,
                            f"Order {order_id} is not awaiting a {self._method.value} payment",
                        )
                    )
                return Ok(pending)

    async def _order(self, order_id: str) -> Result[Order, CheckoutError]:
        match await self._orders.get(order_id, fresh=True):
            case Ok(order):
                return Ok(order)
            case Error(e):
                return Error(checkout_error_from_order(e))

    def _resume(self, pending: PendingRedirect, order: Order) -> CheckoutOrchestrator:
        return CheckoutOrchestrator.resume(
            pending,
            order,
            self._orders,
            self._gateways,
            self._redirects,
            config=self._config,
        )

    async def handle_return(
        self, token: str | None, order_id: str | None
    ) -> Result[CheckoutOutcome, CheckoutError]:
        """
        Capture the payment the gateway approved.

        A repeated return for an order that is already paid re-confirms
        COMPLETED without another capture.
        """
        if not order_id:
            return Error(CheckoutError(CheckoutErrorKind.VALIDATION, "Missing order id", field="orderId"))
        if not token:
            return Error(CheckoutError(CheckoutErrorKind.VALIDATION, "Missing payment token", field="token"))

        match await self._load(order_id):
            case Error(e):
                return Error(e)
            case Ok(pending):
                pass
        match await self._order(order_id):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass

        if order.is_paid:
            await self._redirects.delete(order_id)
            logger.info("checkout.return_already_paid", order_id=order_id)
            return Ok(CheckoutOutcome(order_id=order_id, step=Step.COMPLETED, order=order))

        checkout = self._resume(pending, order)
        result = await checkout.complete_redirect(token)

        match await self._order(order_id):
            case Ok(refreshed):
                final = refreshed
            case Error(_):
                final = order

        state = checkout.state
        match result:
            case Ok(_):
                return Ok(CheckoutOutcome(order_id=order_id, step=state.step, attempt=state.attempt, order=final))
            case Error(err):
                logger.warning("checkout.capture_failed", order_id=order_id, kind=err.kind.name)
                return Ok(
                    CheckoutOutcome(
                        order_id=order_id,
                        step=state.step,
                        attempt=state.attempt,
                        order=final,
                        error=err,
                    )
                )

    async def handle_cancel(self, order_id: str | None) -> Result[CheckoutOutcome, CheckoutError]:
        """The customer backed out at the gateway. The order stays, ready for another attempt."""
        if not order_id:
            return Error(CheckoutError(CheckoutErrorKind.VALIDATION, "Missing order id", field="orderId"))

        match await self._load(order_id):
            case Error(e):
                return Error(e)
            case Ok(pending):
                pass
        match await self._order(order_id):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass

        if order.is_paid:
            await self._redirects.delete(order_id)
            return Ok(CheckoutOutcome(order_id=order_id, step=Step.COMPLETED, order=order))

        checkout = self._resume(pending, order)
        match await checkout.cancel("Payment cancelled at the gateway"):
            case Error(e):
                return Error(e)
            case Ok(state):
                return Ok(CheckoutOutcome(order_id=order_id, step=state.step, order=order))


__all__ = ("ReturnHandler",)
