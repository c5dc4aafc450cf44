"""
CheckoutOrchestrator: one checkout, one state machine.

    checkout = CheckoutOrchestrator(orders, gateways, redirects, config=config)
    await checkout.load_catalog()
    checkout.select_product("genshin", "genshin-6480")
    checkout.confirm_product()
    checkout.enter_credentials("player1", "secret", "me@example.com")
    checkout.set_quantity(2)

    match await checkout.submit():
        case Ok(order):
            await checkout.pay(PaymentMethod.PAYPAL)   # → approval url in checkout.state
        case Error(CheckoutError(kind=CheckoutErrorKind.TIMEOUT)):
            offer_retry()                            # still REVIEWING_ORDER

Every transition bumps state.version. Async steps remember the version they
started under and drop their result if the checkout moved on meanwhile.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, cast

import structlog
from kungfu import Result, Ok, Error

from topup.config import TopupConfig
from topup.orders import (
    Catalog,
    Denomination,
    GameCredentials,
    NewOrder,
    Order,
    OrderError,
    OrderErrorKind,
    OrderRepository,
    order_total,
    validate_email,
    validate_quantity,
)
from topup.payments import (
    Capability,
    DirectGateway,
    DirectPayment,
    GatewayError,
    GatewayErrorKind,
    GatewayRegistry,
    PaymentAttempt,
    PaymentDetails,
    PaymentMethod,
    PaymentOutcome,
    RedirectGateway,
    UNAVAILABLE_MESSAGE,
    validate_amount,
)
from topup.request import CancelToken
from topup.session import EventBus, Handler, Subscription
from topup.checkout._redirects import RedirectStore
from topup.checkout._transitions import BACK, can_transition, check_transition
from topup.checkout._types import (
    CheckoutError,
    CheckoutErrorKind,
    CheckoutState,
    PendingRedirect,
    Step,
)

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════════════════════════════════════

_ORDER_KINDS: dict[OrderErrorKind, CheckoutErrorKind] = {
    OrderErrorKind.VALIDATION: CheckoutErrorKind.VALIDATION,
    OrderErrorKind.NOT_FOUND: CheckoutErrorKind.NOT_FOUND,
    OrderErrorKind.UNAUTHORIZED: CheckoutErrorKind.AUTH,
    OrderErrorKind.TIMEOUT: CheckoutErrorKind.TIMEOUT,
    OrderErrorKind.ABORTED: CheckoutErrorKind.ABORTED,
    OrderErrorKind.NETWORK: CheckoutErrorKind.NETWORK,
    OrderErrorKind.SERVER: CheckoutErrorKind.SERVER,
}

_GATEWAY_KINDS: dict[GatewayErrorKind, CheckoutErrorKind] = {
    GatewayErrorKind.VALIDATION: CheckoutErrorKind.VALIDATION,
    GatewayErrorKind.REJECTED: CheckoutErrorKind.GATEWAY,
    GatewayErrorKind.UNAVAILABLE: CheckoutErrorKind.UNAVAILABLE,
    GatewayErrorKind.TIMEOUT: CheckoutErrorKind.TIMEOUT,
    GatewayErrorKind.ABORTED: CheckoutErrorKind.ABORTED,
    GatewayErrorKind.NETWORK: CheckoutErrorKind.NETWORK,
    GatewayErrorKind.UNAUTHORIZED: CheckoutErrorKind.AUTH,
    GatewayErrorKind.SERVER: CheckoutErrorKind.SERVER,
}


def checkout_error_from_order(err: OrderError) -> CheckoutError:
    return CheckoutError(_ORDER_KINDS[err.kind], err.message, err.status)


def checkout_error_from_gateway(err: GatewayError) -> CheckoutError:
    return CheckoutError(_GATEWAY_KINDS[err.kind], err.message, err.status, err.field)


def _invalid(message: str, field: str | None = None) -> CheckoutError:
    return CheckoutError(CheckoutErrorKind.VALIDATION, message, field=field)


def _illegal(step: Step, action: str) -> CheckoutError:
    return CheckoutError(CheckoutErrorKind.ILLEGAL_TRANSITION, f"Cannot {action} while {step.name}")


# ═══════════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutOrchestrator:
    """
    Drives product selection → credentials → submit → payment → capture.

    Owns its CheckoutState exclusively; observers get snapshots via watch().
    Collaborators are injected, nothing is looked up globally.
    """

    def __init__(
        self,
        orders: OrderRepository,
        gateways: GatewayRegistry,
        redirects: RedirectStore,
        *,
        config: TopupConfig | None = None,
        checkout_id: str | None = None,
        state: CheckoutState | None = None,
    ) -> None:
        self._orders = orders
        self._gateways = gateways
        self._redirects = redirects
        self._config = config or TopupConfig()
        self.checkout_id = checkout_id or uuid.uuid4().hex
        self._state = state or CheckoutState()
        self._catalog: Catalog | None = None
        self._cancel = CancelToken()
        self._bus: EventBus[CheckoutState] = EventBus()

    @classmethod
    def resume(
        cls,
        pending: PendingRedirect,
        order: Order,
        orders: OrderRepository,
        gateways: GatewayRegistry,
        redirects: RedirectStore,
        *,
        config: TopupConfig | None = None,
    ) -> CheckoutOrchestrator:
        """Rebuild a checkout parked at REDIRECTING_TO_GATEWAY from its persisted record."""
        state = CheckoutState(
            step=Step.REDIRECTING_TO_GATEWAY,
            order=order,
            method=pending.method,
        )
        return cls(
            orders,
            gateways,
            redirects,
            config=config,
            checkout_id=pending.checkout_id,
            state=state,
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Observation
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def step(self) -> Step:
        return self._state.step

    @property
    def catalog(self) -> Catalog | None:
        return self._catalog

    def watch(self, handler: Handler[CheckoutState]) -> Subscription:
        return self._bus.subscribe(handler)

    def total_price(self) -> Decimal | None:
        """Price shown for the current selection. Always unit price × quantity."""
        denomination = self._current_denomination()
        if denomination is None:
            return None
        return order_total(denomination.display_price, self._state.form.quantity)

    # ───────────────────────────────────────────────────────────────────────────
    # Internals
    # ───────────────────────────────────────────────────────────────────────────

    def _enter(self, target: Step, **changes: Any) -> CheckoutState:
        source = self._state.step
        if not can_transition(source, target):
            raise RuntimeError(f"illegal checkout transition {source.name} -> {target.name}")
        self._state = replace(self._state, step=target, version=self._state.version + 1, **changes)
        logger.info(
            "checkout.step",
            checkout_id=self.checkout_id,
            source=source.name,
            target=target.name,
            version=self._state.version,
        )
        self._bus.publish(self._state)
        return self._state

    def _update(self, **changes: Any) -> CheckoutState:
        self._state = replace(self._state, **changes)
        self._bus.publish(self._state)
        return self._state

    def _reject(self, error: CheckoutError) -> Error[CheckoutError]:
        self._update(last_error=error)
        return Error(error)

    def _is_current(self, version: int) -> bool:
        return self._state.version == version

    def _stale(self, version: int, operation: str) -> Error[CheckoutError]:
        logger.info(
            "checkout.late_result_dropped",
            checkout_id=self.checkout_id,
            operation=operation,
            started_at=version,
            current=self._state.version,
        )
        return Error(CheckoutError(CheckoutErrorKind.STALE, "Checkout moved on before the result arrived"))

    def _current_denomination(self) -> Denomination | None:
        selected = self._state.selected_denomination
        if selected is None:
            return None
        if self._catalog is not None:
            return self._catalog.denomination(selected.id) or selected
        return selected

    async def _clear_redirect(self, order_id: str) -> None:
        match await self._redirects.delete(order_id):
            case Error(e):
                logger.warning("checkout.redirect_clear_failed", order_id=order_id, error=e.message)
            case Ok(_):
                pass

    # ───────────────────────────────────────────────────────────────────────────
    # Product selection
    # ───────────────────────────────────────────────────────────────────────────

    async def load_catalog(self, *, refresh: bool = False) -> Result[Catalog, CheckoutError]:
        match await self._orders.list_products(refresh=refresh):
            case Ok(catalog):
                self._catalog = catalog
                return Ok(catalog)
            case Error(e):
                return Error(checkout_error_from_order(e))

    def select_product(self, game_id: str, denomination_id: str) -> Result[CheckoutState, CheckoutError]:
        if self._state.step is not Step.SELECTING_PRODUCT:
            return Error(_illegal(self._state.step, "select a product"))
        if self._catalog is None:
            return self._reject(_invalid("Product list is not loaded yet"))

        game = self._catalog.game(game_id)
        if game is None or game.is_archived:
            return self._reject(_invalid("Please choose a game", field="game"))
        denomination = self._catalog.denomination(denomination_id)
        if denomination is None or denomination.game_id != game.id or not denomination.purchasable:
            return self._reject(_invalid("Please choose an available package", field="denomination"))

        return Ok(self._update(selected_game=game, selected_denomination=denomination, last_error=None))

    def confirm_product(self) -> Result[CheckoutState, CheckoutError]:
        """SELECTING_PRODUCT → ENTERING_CREDENTIALS. Requires a game and a purchasable denomination."""
        match check_transition(self._state.step, Step.ENTERING_CREDENTIALS):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass
        state = self._state
        if state.selected_game is None or state.selected_denomination is None:
            return self._reject(_invalid("Please choose a game and a package", field="denomination"))
        return Ok(self._enter(Step.ENTERING_CREDENTIALS, last_error=None))

    def set_quantity(self, quantity: int) -> Result[CheckoutState, CheckoutError]:
        if self._state.step not in (Step.SELECTING_PRODUCT, Step.ENTERING_CREDENTIALS, Step.REVIEWING_ORDER):
            return Error(_illegal(self._state.step, "change the quantity"))
        match validate_quantity(quantity):
            case Error(message):
                return self._reject(_invalid(message, field="quantity"))
            case Ok(q):
                return Ok(self._update(form=replace(self._state.form, quantity=q), last_error=None))

    # ───────────────────────────────────────────────────────────────────────────
    # Credentials & review
    # ───────────────────────────────────────────────────────────────────────────

    def enter_credentials(
        self,
        username: str,
        password: str,
        email: str,
        *,
        phone: str | None = None,
        notes: str | None = None,
    ) -> Result[CheckoutState, CheckoutError]:
        """ENTERING_CREDENTIALS → REVIEWING_ORDER once the game login is filled in. The email is checked on submit."""
        match check_transition(self._state.step, Step.REVIEWING_ORDER):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass
        if not username.strip():
            return self._reject(_invalid("Game login username is required", field="username"))
        if not password:
            return self._reject(_invalid("Game login password is required", field="password"))
        form = replace(
            self._state.form,
            username=username.strip(),
            password=password,
            email=email.strip(),
            phone=(phone or "").strip() or None,
            notes=(notes or "").strip() or None,
        )
        return Ok(self._enter(Step.REVIEWING_ORDER, form=form, last_error=None))

    def back(self) -> Result[CheckoutState, CheckoutError]:
        target = BACK.get(self._state.step)
        if target is None:
            return Error(_illegal(self._state.step, "go back"))
        return Ok(self._enter(target, last_error=None))

    # ───────────────────────────────────────────────────────────────────────────
    # Submission
    # ───────────────────────────────────────────────────────────────────────────

    async def submit(self) -> Result[Order, CheckoutError]:
        """
        REVIEWING_ORDER → SUBMITTING → AWAITING_PAYMENT_METHOD.

        The in-flight flag is set before the first await, so a second call
        while one is pending gets CONFLICT and never reaches the network.
        On failure the checkout returns to REVIEWING_ORDER with the form intact.
        """
        state = self._state
        if state.submission_in_flight:
            logger.warning("checkout.duplicate_submit", checkout_id=self.checkout_id)
            return Error(CheckoutError(CheckoutErrorKind.CONFLICT, "Your order is already being submitted"))
        if state.step is not Step.REVIEWING_ORDER:
            return Error(_illegal(state.step, "submit the order"))

        game = state.selected_game
        denomination = self._current_denomination()
        if game is None or denomination is None:
            return self._reject(_invalid("Please choose a game and a package", field="denomination"))
        if not denomination.purchasable:
            return self._reject(_invalid("This package is no longer available", field="denomination"))

        form = state.form
        match validate_email(form.email):
            case Error(message):
                return self._reject(_invalid(message, field="email"))
            case Ok(email):
                pass
        new = NewOrder(
            game_id=game.id,
            denomination_id=denomination.id,
            credentials=GameCredentials(form.username, form.password),
            customer_email=email,
            quantity=form.quantity,
            price_per_unit=denomination.display_price,
            customer_phone=form.phone,
            notes=form.notes,
        )

        self._enter(Step.SUBMITTING, submission_in_flight=True, last_error=None)
        version = self._state.version
        try:
            result = await self._orders.create(new, cancel=self._cancel)
        except BaseException:
            # Hand the review step back, then let the exception (or cancellation) through
            if self._is_current(version):
                self._enter(Step.REVIEWING_ORDER, submission_in_flight=False)
            raise
        if not self._is_current(version):
            return self._stale(version, "create_order")

        match result:
            case Ok(order):
                if order.total_price != new.total_price:
                    logger.warning(
                        "checkout.total_adjusted",
                        order_id=order.id,
                        shown=str(new.total_price),
                        charged=str(order.total_price),
                    )
                self._enter(Step.AWAITING_PAYMENT_METHOD, order=order, submission_in_flight=False)
                return Ok(order)
            case Error(e):
                err = checkout_error_from_order(e)
                logger.warning("checkout.submit_failed", checkout_id=self.checkout_id, kind=err.kind.name)
                self._enter(Step.REVIEWING_ORDER, submission_in_flight=False, last_error=err)
                return Error(err)

    # ───────────────────────────────────────────────────────────────────────────
    # Payment
    # ───────────────────────────────────────────────────────────────────────────

    async def pay(
        self, method: PaymentMethod, details: PaymentDetails | None = None
    ) -> Result[CheckoutState, CheckoutError]:
        """
        Start paying the submitted order.

        REDIRECT:      persist (order, method), then fetch the approval url.
                       The checkout stays in REDIRECTING_TO_GATEWAY until the
                       gateway sends the browser back.
        DIRECT_SUBMIT: validate details locally, then one submit.
        DISABLED:      UNAVAILABLE, state untouched.
        """
        state = self._state
        order = state.order
        if state.step is not Step.AWAITING_PAYMENT_METHOD or order is None:
            return Error(_illegal(state.step, "start a payment"))

        gateway = self._gateways.get(method)
        if gateway is None:
            return self._reject(_invalid("Please choose a payment method", field="method"))

        match gateway.capability:
            case Capability.DISABLED:
                logger.info("checkout.method_unavailable", method=method.value)
                return Error(CheckoutError(CheckoutErrorKind.UNAVAILABLE, UNAVAILABLE_MESSAGE))
            case Capability.REDIRECT:
                return await self._pay_redirect(cast(RedirectGateway, gateway), order)
            case Capability.DIRECT_SUBMIT:
                return await self._pay_direct(cast(DirectGateway, gateway), order, details)

    async def _pay_redirect(self, gateway: RedirectGateway, order: Order) -> Result[CheckoutState, CheckoutError]:
        self._enter(
            Step.REDIRECTING_TO_GATEWAY,
            method=gateway.method,
            attempt=None,
            approval_url=None,
            last_error=None,
        )
        version = self._state.version

        pending = PendingRedirect(
            order_id=order.id,
            method=gateway.method,
            created_at=datetime.now(timezone.utc),
            checkout_id=self.checkout_id,
        )
        match await self._redirects.save(pending):
            case Error(store_err):
                logger.error("checkout.redirect_persist_failed", order_id=order.id, error=store_err.message)
                err = CheckoutError(CheckoutErrorKind.STORAGE, "Could not prepare the payment redirect, please try again")
                if not self._is_current(version):
                    return self._stale(version, "persist_redirect")
                self._enter(Step.AWAITING_PAYMENT_METHOD, method=None, last_error=err)
                return Error(err)
            case Ok(_):
                pass
        if not self._is_current(version):
            await self._clear_redirect(order.id)
            return self._stale(version, "persist_redirect")

        result = await gateway.create(order.id, cancel=self._cancel)
        if not self._is_current(version):
            return self._stale(version, "create_payment")

        match result:
            case Ok(url):
                attempt = PaymentAttempt(order_id=order.id, method=gateway.method, outcome=PaymentOutcome.REDIRECTED)
                logger.info("checkout.redirecting", order_id=order.id, method=gateway.method.value)
                return Ok(self._update(approval_url=url, attempt=attempt))
            case Error(e):
                await self._clear_redirect(order.id)
                err = checkout_error_from_gateway(e)
                self._enter(Step.AWAITING_PAYMENT_METHOD, method=None, last_error=err)
                return Error(err)

    async def _pay_direct(
        self, gateway: DirectGateway, order: Order, details: PaymentDetails | None
    ) -> Result[CheckoutState, CheckoutError]:
        if details is None:
            return self._reject(_invalid("Payment details are required", field="details"))
        match gateway.validate(details):
            case Error(e):
                return self._reject(checkout_error_from_gateway(e))
            case Ok(validated):
                pass
        match validate_amount(order.total_price):
            case Error(e):
                return self._reject(checkout_error_from_gateway(e))
            case Ok(amount):
                pass

        self._enter(Step.CAPTURING_PAYMENT, method=gateway.method, attempt=None, last_error=None)
        version = self._state.version
        payment = DirectPayment(
            order_id=order.id,
            amount=amount,
            currency=self._config.currency,
            details=validated,
        )
        result = await gateway.submit(payment, cancel=self._cancel)
        if not self._is_current(version):
            return self._stale(version, "submit_payment")

        match result:
            case Ok(attempt):
                await self._orders.invalidate(order.id)
                return Ok(self._enter(Step.COMPLETED, attempt=attempt))
            case Error(e):
                err = checkout_error_from_gateway(e)
                failed = PaymentAttempt(
                    order_id=order.id,
                    method=gateway.method,
                    outcome=PaymentOutcome.FAILED,
                    message=err.message,
                )
                self._enter(Step.FAILED, attempt=failed, last_error=err)
                return Error(err)

    async def complete_redirect(self, gateway_token: str) -> Result[CheckoutState, CheckoutError]:
        """
        REDIRECTING_TO_GATEWAY → CAPTURING_PAYMENT → COMPLETED | FAILED.

        Calling again with the same token after COMPLETED re-confirms it.
        """
        state = self._state
        if (
            state.step is Step.COMPLETED
            and state.attempt is not None
            and state.attempt.gateway_order_id == gateway_token
        ):
            return Ok(state)
        order = state.order
        if state.step is not Step.REDIRECTING_TO_GATEWAY or order is None or state.method is None:
            return Error(_illegal(state.step, "capture a payment"))

        gateway = self._gateways.get(state.method)
        if gateway is None or gateway.capability is not Capability.REDIRECT:
            return self._reject(_invalid("Payment method does not use a redirect", field="method"))
        redirect = cast(RedirectGateway, gateway)

        self._enter(Step.CAPTURING_PAYMENT, last_error=None)
        version = self._state.version
        result = await redirect.capture(order.id, gateway_token)
        if not self._is_current(version):
            return self._stale(version, "capture_payment")

        await self._clear_redirect(order.id)
        match result:
            case Ok(attempt):
                await self._orders.invalidate(order.id)
                return Ok(self._enter(Step.COMPLETED, attempt=attempt, approval_url=None))
            case Error(e):
                err = checkout_error_from_gateway(e)
                failed = PaymentAttempt(
                    order_id=order.id,
                    method=redirect.method,
                    outcome=PaymentOutcome.FAILED,
                    gateway_order_id=gateway_token,
                    message=err.message,
                )
                self._enter(Step.FAILED, attempt=failed, approval_url=None, last_error=err)
                return Error(err)

    def retry_payment(self) -> Result[CheckoutState, CheckoutError]:
        """FAILED → AWAITING_PAYMENT_METHOD with a fresh attempt for the same order."""
        if self._state.step is not Step.FAILED:
            return Error(_illegal(self._state.step, "retry the payment"))
        return Ok(
            self._enter(
                Step.AWAITING_PAYMENT_METHOD,
                method=None,
                attempt=None,
                approval_url=None,
                last_error=None,
            )
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Cancellation
    # ───────────────────────────────────────────────────────────────────────────

    async def cancel(self, reason: str = "Checkout cancelled") -> Result[CheckoutState, CheckoutError]:
        """
        Any pre-payment step, or a redirect the gateway reports cancelled → CANCELLED.

        In-flight requests are aborted and their late results discarded.
        A created order is left on the backend as is.
        """
        previous = self._state
        match check_transition(previous.step, Step.CANCELLED):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        self._enter(
            Step.CANCELLED,
            submission_in_flight=False,
            approval_url=None,
            last_error=None,
        )
        self._cancel.cancel(reason)
        if previous.step is Step.REDIRECTING_TO_GATEWAY and previous.order is not None:
            await self._clear_redirect(previous.order.id)
        logger.info("checkout.cancelled", checkout_id=self.checkout_id, reason=reason)
        return Ok(self._state)


__all__ = (
    "CheckoutOrchestrator",
    "checkout_error_from_order",
    "checkout_error_from_gateway",
)
