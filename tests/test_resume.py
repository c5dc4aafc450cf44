"""Tests for the gateway round trip: redirect store, ReturnHandler, return routes, storefront."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from kungfu import Error, Ok

from topup import open_storefront
from topup.checkout import (
    CheckoutErrorKind,
    CheckoutOrchestrator,
    MemoryRedirectStore,
    PendingRedirect,
    ReturnHandler,
    SQLAlchemyRedirectStore,
    Step,
)
from topup.orders import OrderRepository, PaymentStatus
from topup.payments import PaymentMethod
from topup.wire import CANCEL_PATH, RETURN_PATH, create_app


@pytest.fixture
async def sql_store(tmp_path):
    store = await SQLAlchemyRedirectStore.create(f"sqlite+aiosqlite:///{tmp_path / 'redirects.db'}")
    yield store
    await store.dispose()


@pytest.fixture
def handler(orders, gateways, redirects, config) -> ReturnHandler:
    return ReturnHandler(orders, gateways, redirects, config=config)


async def redirected(checkout: CheckoutOrchestrator, reach_review) -> str:
    """Drive a checkout to the gateway hand-off, return the order id."""
    await reach_review(checkout)
    await checkout.submit()
    assert isinstance(await checkout.pay(PaymentMethod.PAYPAL), Ok)
    return checkout.state.order_id


# ═══════════════════════════════════════════════════════════════════════════════
# Redirect store
# ═══════════════════════════════════════════════════════════════════════════════


async def test_sql_store_round_trip(sql_store: SQLAlchemyRedirectStore):
    created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    pending = PendingRedirect("ord_1", PaymentMethod.PAYPAL, created, checkout_id="chk-1")

    assert isinstance(await sql_store.save(pending), Ok)
    loaded = (await sql_store.load("ord_1")).value

    assert loaded == pending
    assert loaded.created_at.tzinfo is not None


async def test_sql_store_save_overwrites(sql_store):
    first = datetime.now(timezone.utc).replace(microsecond=0)
    await sql_store.save(PendingRedirect("ord_1", PaymentMethod.PAYPAL, first))
    await sql_store.save(PendingRedirect("ord_1", PaymentMethod.PAYPAL, first + timedelta(minutes=1), "chk-2"))

    loaded = (await sql_store.load("ord_1")).value

    assert loaded.checkout_id == "chk-2"
    assert loaded.created_at == first + timedelta(minutes=1)


async def test_sql_store_delete(sql_store):
    await sql_store.save(PendingRedirect("ord_1", PaymentMethod.PAYPAL, datetime.now(timezone.utc)))

    assert (await sql_store.delete("ord_1")).value is True
    assert (await sql_store.delete("ord_1")).value is False
    assert (await sql_store.load("ord_1")).value is None


async def test_sql_store_survives_reopen(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'durable.db'}"
    first = await SQLAlchemyRedirectStore.create(url)
    await first.save(PendingRedirect("ord_9", PaymentMethod.PAYPAL, datetime.now(timezone.utc)))
    await first.dispose()

    second = await SQLAlchemyRedirectStore.create(url)
    try:
        assert (await second.load("ord_9")).value.order_id == "ord_9"
    finally:
        await second.dispose()


async def test_sql_store_failure_is_an_error_value(tmp_path):
    broken = await SQLAlchemyRedirectStore.create(f"sqlite+aiosqlite:///{tmp_path / 'gone.db'}")
    async with broken._engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE pending_redirects")

    result = await broken.load("ord_1")
    await broken.dispose()

    match result:
        case Error(e):
            assert "Failed to load redirect" in e.message
            assert e.cause is not None
        case Ok(_):
            raise AssertionError("expected a store error")


# ═══════════════════════════════════════════════════════════════════════════════
# ReturnHandler
# ═══════════════════════════════════════════════════════════════════════════════


async def test_return_captures_and_clears_record(checkout, reach_review, handler, redirects, backend):
    order_id = await redirected(checkout, reach_review)

    result = await handler.handle_return(token="EC-TOKEN", order_id=order_id)

    match result:
        case Ok(outcome):
            assert outcome.step is Step.COMPLETED
            assert outcome.attempt.transaction_id == "cap_EC-TOKEN"
            assert outcome.order.payment_status is PaymentStatus.PAID
            assert outcome.error is None
        case Error(e):
            raise AssertionError(f"return failed: {e}")
    assert len(redirects) == 0
    assert backend.bodies["POST /payments/paypal/capture"] == [{"orderId": order_id, "gatewayToken": "EC-TOKEN"}]


async def test_repeated_return_reconfirms_without_capture(checkout, reach_review, handler, backend):
    order_id = await redirected(checkout, reach_review)

    await handler.handle_return(token="EC-TOKEN", order_id=order_id)
    again = await handler.handle_return(token="EC-TOKEN", order_id=order_id)

    assert again.value.step is Step.COMPLETED
    assert backend.count("POST /payments/paypal/capture") == 1


async def test_return_on_fresh_process(checkout, reach_review, executor, gateways, redirects, config, backend):
    """A handler with its own cold repository, as after a restart."""
    order_id = await redirected(checkout, reach_review)
    cold = ReturnHandler(OrderRepository(executor), gateways, redirects, config=config)

    result = await cold.handle_return(token="EC-TOKEN", order_id=order_id)

    assert result.value.step is Step.COMPLETED


async def test_return_without_record_still_captures(orders, gateways, config, backend, checkout, reach_review):
    order_id = await redirected(checkout, reach_review)
    # Record lost, e.g. storage wiped between hand-off and return
    handler = ReturnHandler(orders, gateways, MemoryRedirectStore(), config=config)

    result = await handler.handle_return(token="EC-TOKEN", order_id=order_id)

    assert result.value.step is Step.COMPLETED


async def test_failed_capture_reported_as_outcome(checkout, reach_review, handler, backend):
    order_id = await redirected(checkout, reach_review)
    backend.overrides["POST /payments/paypal/capture"] = httpx.Response(
        422, json={"error": "Payment capture incomplete"}
    )

    result = await handler.handle_return(token="EC-TOKEN", order_id=order_id)

    match result:
        case Ok(outcome):
            assert outcome.step is Step.FAILED
            assert outcome.error.kind is CheckoutErrorKind.GATEWAY
            assert outcome.error.message == "Payment capture incomplete"
        case Error(e):
            raise AssertionError(f"unexpected error {e}")


@pytest.mark.parametrize(
    "token,order_id,field",
    [(None, "ord_1", "token"), ("EC-1", None, "orderId"), ("", "", "orderId")],
)
async def test_return_requires_params(handler, backend, token, order_id, field):
    result = await handler.handle_return(token=token, order_id=order_id)

    match result:
        case Error(e):
            assert e.kind is CheckoutErrorKind.VALIDATION
            assert e.field == field
        case Ok(_):
            raise AssertionError("expected validation error")
    assert backend.calls == []


async def test_return_for_unknown_order(handler):
    result = await handler.handle_return(token="EC-1", order_id="ord_missing")

    assert result.value.kind is CheckoutErrorKind.NOT_FOUND


async def test_return_with_mismatched_method(orders, gateways, redirects, config):
    await redirects.save(PendingRedirect("ord_1", PaymentMethod.CREDIT_CARD, datetime.now(timezone.utc)))
    handler = ReturnHandler(orders, gateways, redirects, config=config)

    result = await handler.handle_return(token="EC-1", order_id="ord_1")

    assert result.value.kind is CheckoutErrorKind.VALIDATION


async def test_cancel_keeps_order_and_clears_record(checkout, reach_review, handler, redirects, backend):
    order_id = await redirected(checkout, reach_review)

    result = await handler.handle_cancel(order_id)

    assert result.value.step is Step.CANCELLED
    assert result.value.order.payment_status is PaymentStatus.PENDING
    assert order_id in backend.orders
    assert len(redirects) == 0
    assert backend.count("POST /payments/paypal/capture") == 0


async def test_cancel_after_payment_reports_completed(checkout, reach_review, handler):
    order_id = await redirected(checkout, reach_review)
    await handler.handle_return(token="EC-TOKEN", order_id=order_id)

    result = await handler.handle_cancel(order_id)

    assert result.value.step is Step.COMPLETED


# ═══════════════════════════════════════════════════════════════════════════════
# Return routes
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
async def shop(handler):
    transport = httpx.ASGITransport(app=create_app(handler))
    async with httpx.AsyncClient(transport=transport, base_url="http://shop.test") as http:
        yield http


async def test_return_route_completes_payment(checkout, reach_review, shop):
    order_id = await redirected(checkout, reach_review)

    resp = await shop.get(RETURN_PATH, params={"token": "EC-TOKEN", "orderId": order_id})

    assert resp.status_code == 200
    body = resp.json()
    assert body["orderId"] == order_id
    assert body["status"] == "completed"
    assert body["paymentStatus"] == "paid"
    assert body["transactionId"] == "cap_EC-TOKEN"
    assert "message" not in body


async def test_return_route_missing_token(shop):
    resp = await shop.get(RETURN_PATH, params={"orderId": "ord_1"})

    assert resp.status_code == 400
    assert resp.json() == {"status": "error", "message": "Missing payment token"}


async def test_return_route_declined_capture(checkout, reach_review, shop, backend):
    order_id = await redirected(checkout, reach_review)
    backend.overrides["POST /payments/paypal/capture"] = httpx.Response(
        200, json={"success": False, "error": "Payment capture incomplete"}
    )

    resp = await shop.get(RETURN_PATH, params={"token": "EC-TOKEN", "orderId": order_id})

    assert resp.status_code == 402
    assert resp.json()["status"] == "failed"
    assert resp.json()["message"] == "Payment capture incomplete"


async def test_cancel_route(checkout, reach_review, shop):
    order_id = await redirected(checkout, reach_review)

    resp = await shop.get(CANCEL_PATH, params={"orderId": order_id})

    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


# ═══════════════════════════════════════════════════════════════════════════════
# Storefront
# ═══════════════════════════════════════════════════════════════════════════════


async def test_storefront_end_to_end(client, config, backend, tmp_path):
    config = config.with_redirect_db_url(f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}")

    async with await open_storefront(config, client=client) as shop:
        login = await shop.session.login("player@example.com", "player-pw")
        assert isinstance(login, Ok)

        flow = shop.checkout()
        await flow.load_catalog()
        flow.select_product("pubg", "pubg-60")
        flow.confirm_product()
        flow.enter_credentials("uc-player", "pw", "player@example.com")
        order = (await flow.submit()).value
        await flow.pay(PaymentMethod.PAYPAL)

        # The browser comes back to a different handler instance
        result = await shop.return_handler().handle_return(token="EC-E2E", order_id=order.id)

        assert result.value.step is Step.COMPLETED
        assert backend.headers[-1]["authorization"] == f"Bearer {shop.session.access_token()}"

    assert not client.is_closed


async def test_storefront_serves_return_routes(client, config):
    shop = await open_storefront(config, client=client, durable_redirects=False)
    assert isinstance(shop.redirects, MemoryRedirectStore)

    transport = httpx.ASGITransport(app=shop.app())
    async with httpx.AsyncClient(transport=transport, base_url="http://shop.test") as browser:
        resp = await browser.get(CANCEL_PATH, params={"orderId": "ord_missing"})

    assert resp.status_code == 404
    assert resp.json()["message"] == "Order not found"
    await shop.aclose()
