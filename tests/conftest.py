"""Pytest fixtures: an in-process fake storefront backend behind httpx.MockTransport."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
import pytest

from topup.checkout import CheckoutOrchestrator, MemoryRedirectStore
from topup.config import TopupConfig
from topup.orders import OrderRepository
from topup.payments import default_gateways
from topup.request import RequestExecutor

API = "http://api.test/server"
AUTH = "http://auth.test/auth/v1"

DECLINED_CARD = "4000000000000002"


def _json(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(status, json=payload)


@dataclass
class FakeUser:
    user_id: str
    email: str
    password: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeBackend:
    """
    Storefront + auth backend in memory.

    Routes are keyed like "POST /orders" or "GET /orders/{id}". `delays` and
    `overrides` use the same keys to slow a route down or replace its answer.
    """

    games: list[dict[str, Any]] = field(default_factory=list)
    denominations: list[dict[str, Any]] = field(default_factory=list)
    orders: dict[str, dict[str, Any]] = field(default_factory=dict)
    users: dict[str, FakeUser] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)  # access/refresh token → email
    calls: list[str] = field(default_factory=list)
    bodies: dict[str, list[Any]] = field(default_factory=dict)
    headers: list[httpx.Headers] = field(default_factory=list)
    delays: dict[str, float] = field(default_factory=dict)
    overrides: dict[str, httpx.Response] = field(default_factory=dict)
    _seq: int = 0

    @classmethod
    def seeded(cls) -> "FakeBackend":
        backend = cls(
            games=[
                {"id": "genshin", "name": "Genshin Impact", "region_code": "TW"},
                {"id": "pubg", "name": "PUBG Mobile"},
                {"id": "retired", "name": "Retired Game", "is_archived": True},
            ],
            denominations=[
                {"id": "gi-60", "game_id": "genshin", "name": "60 Genesis Crystals", "display_price": 0.99},
                {"id": "gi-330", "game_id": "genshin", "name": "330 Genesis Crystals", "display_price": "4.99"},
                {"id": "gi-6480", "game_id": "genshin", "name": "6480 Genesis Crystals", "display_price": 99.99},
                {"id": "gi-sold-out", "game_id": "genshin", "name": "Welkin", "display_price": 4.99, "is_available": False},
                {"id": "pubg-60", "game_id": "pubg", "name": "60 UC", "display_price": 0.99},
            ],
        )
        backend.add_user("admin-1", "admin@example.com", "admin-pw", {"role": "admin", "full_name": "Ada Admin"})
        backend.add_user("cs-1", "cs@example.com", "cs-pw", {"role": "cs"})
        backend.add_user("user-1", "player@example.com", "player-pw", {})
        return backend

    def add_user(self, user_id: str, email: str, password: str, metadata: dict[str, Any]) -> None:
        self.users[email] = FakeUser(user_id, email, password, metadata)

    def count(self, key: str) -> int:
        return sum(1 for c in self.calls if c == key)

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    # ───────────────────────────────────────────────────────────────────────────
    # Dispatch
    # ───────────────────────────────────────────────────────────────────────────

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/auth/v1"):
            path = path.removeprefix("/auth/v1")
        else:
            path = path.removeprefix("/server")
        parts = [p for p in path.split("/") if p]
        template = list(parts)
        if len(template) > 1 and template[0] == "orders":
            template[1] = "{id}"
        key = f"{request.method} /{'/'.join(template)}"

        self.calls.append(key)
        self.headers.append(request.headers)
        body = json.loads(request.content) if request.content else None
        self.bodies.setdefault(key, []).append(body)

        delay = self.delays.get(key)
        if delay:
            await asyncio.sleep(delay)
        if key in self.overrides:
            return self.overrides[key]

        match (request.method, parts):
            case ("GET", ["products"]):
                return _json(200, {"games": self.games, "denominations": self.denominations})
            case ("POST", ["orders"]):
                return self._create_order(body or {})
            case ("GET", ["orders", order_id]):
                order = self.orders.get(order_id)
                if order is None:
                    return _json(404, {"error": "Order not found"})
                return _json(200, {"order": order})
            case ("POST", ["orders", order_id, "fulfill"]):
                return self._fulfill(order_id, body or {})
            case ("POST", ["payments", "paypal", "create"]):
                return self._paypal_create(body or {})
            case ("POST", ["payments", "paypal", "capture"]):
                return self._paypal_capture(body or {})
            case ("POST", ["payments", "process"]):
                return self._process(body or {})
            case ("POST", ["auth", "signup"]):
                return self._signup(body or {})
            case ("POST", ["token"]):
                return self._token(request.url.params.get("grant_type"), body or {})
            case ("GET", ["user"]):
                return self._user(request)
            case ("POST", ["logout"]):
                return httpx.Response(204)
            case _:
                return _json(404, {"error": f"No route {key}"})

    # ───────────────────────────────────────────────────────────────────────────
    # Orders
    # ───────────────────────────────────────────────────────────────────────────

    def _create_order(self, body: dict[str, Any]) -> httpx.Response:
        denomination = next((d for d in self.denominations if d["id"] == body.get("denominationId")), None)
        if denomination is None:
            return _json(400, {"error": "Unknown denomination"})
        quantity = int(body.get("quantity", 0))
        if not 1 <= quantity <= 100:
            return _json(400, {"error": "Quantity must be between 1 and 100"})
        unit = Decimal(str(denomination["display_price"]))
        order_id = self._next("ord_")
        order = {
            "id": order_id,
            "game_id": body["gameId"],
            "denomination_id": denomination["id"],
            "customer_email": body["customer_email"],
            "customer_phone": body.get("customer_phone"),
            "quantity": quantity,
            "price_per_unit": str(unit),
            "total_price": str(unit * quantity),
            "status": "pending",
            "payment_status": "pending",
            "created_at": datetime.now(timezone.utc).isoformat(),
            "notes": body.get("notes"),
        }
        self.orders[order_id] = order
        return _json(201, {"order": order})

    def _fulfill(self, order_id: str, body: dict[str, Any]) -> httpx.Response:
        order = self.orders.get(order_id)
        if order is None:
            return _json(404, {"error": "Order not found"})
        order["status"] = "completed"
        order["fulfilled_at"] = datetime.now(timezone.utc).isoformat()
        order["notes"] = body.get("fulfillment_notes") or order.get("notes")
        return _json(200, {"success": True})

    def _mark_paid(self, order: dict[str, Any], gateway: str, transaction_id: str) -> None:
        order["payment_status"] = "paid"
        order["status"] = "processing"
        order["payment_gateway"] = gateway
        order["gateway_transaction_id"] = transaction_id
        order["paid_at"] = datetime.now(timezone.utc).isoformat()

    # ───────────────────────────────────────────────────────────────────────────
    # Payments
    # ───────────────────────────────────────────────────────────────────────────

    def _paypal_create(self, body: dict[str, Any]) -> httpx.Response:
        order_id = body.get("orderId")
        if order_id not in self.orders:
            return _json(404, {"error": "Order not found"})
        return _json(200, {"approvalUrl": f"https://paypal.test/checkoutnow?token=EC-{order_id}"})

    def _paypal_capture(self, body: dict[str, Any]) -> httpx.Response:
        order = self.orders.get(body.get("orderId", ""))
        token = body.get("gatewayToken")
        if order is None or not token:
            return _json(400, {"error": "orderId and gatewayToken are required"})
        if order["payment_status"] == "paid":
            return _json(200, {"success": True, "message": "Payment already processed"})
        self._mark_paid(order, "paypal", f"cap_{token}")
        return _json(200, {"success": True, "status": "COMPLETED", "transaction_id": f"cap_{token}"})

    def _process(self, body: dict[str, Any]) -> httpx.Response:
        order = self.orders.get(body.get("orderId", ""))
        if order is None:
            return _json(404, {"error": "Order not found"})
        details = body.get("paymentDetails") or {}
        if details.get("cardNumber") == DECLINED_CARD:
            return _json(402, {"error": "Card declined"})
        transaction_id = self._next("txn_")
        self._mark_paid(order, body.get("paymentMethod", "credit_card"), transaction_id)
        return _json(200, {"success": True, "transactionId": transaction_id})

    # ───────────────────────────────────────────────────────────────────────────
    # Auth
    # ───────────────────────────────────────────────────────────────────────────

    def _session_payload(self, user: FakeUser) -> dict[str, Any]:
        access = self._next(f"at-{user.user_id}-")
        refresh = self._next(f"rt-{user.user_id}-")
        self.tokens[access] = user.email
        self.tokens[refresh] = user.email
        return {
            "access_token": access,
            "refresh_token": refresh,
            "expires_in": 3600,
            "user": {"id": user.user_id, "email": user.email, "user_metadata": dict(user.metadata)},
        }

    def _token(self, grant_type: str | None, body: dict[str, Any]) -> httpx.Response:
        if grant_type == "password":
            user = self.users.get(body.get("email", ""))
            if user is None or user.password != body.get("password"):
                return _json(400, {"error": "Invalid login credentials"})
            return _json(200, self._session_payload(user))
        if grant_type == "refresh_token":
            email = self.tokens.get(body.get("refresh_token", ""))
            if email is None:
                return _json(400, {"error": "Invalid refresh token"})
            return _json(200, self._session_payload(self.users[email]))
        return _json(400, {"error": "unsupported grant_type"})

    def _user(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        email = self.tokens.get(token)
        if email is None:
            return _json(401, {"error": "Invalid token"})
        user = self.users[email]
        return _json(200, {"id": user.user_id, "email": user.email, "user_metadata": dict(user.metadata)})

    def _signup(self, body: dict[str, Any]) -> httpx.Response:
        email = body.get("email", "")
        if email in self.users:
            return _json(400, {"error": "User already registered"})
        metadata = {"full_name": body["full_name"]} if body.get("full_name") else {}
        self.add_user(self._next("user-"), email, body.get("password", ""), metadata)
        return _json(200, {"success": True})


# ═══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def config() -> TopupConfig:
    return (
        TopupConfig()
        .with_api_base_url(API)
        .with_auth_base_url(AUTH)
        .with_anon_key("anon-key")
        .with_timeouts(read=2, write=2, payment=2, auth=1)
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend.seeded()


@pytest.fixture
async def client(backend: FakeBackend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as http:
        yield http


@pytest.fixture
def executor(client: httpx.AsyncClient, config: TopupConfig) -> RequestExecutor:
    return RequestExecutor(client, config)


@pytest.fixture
def orders(executor: RequestExecutor) -> OrderRepository:
    return OrderRepository(executor)


@pytest.fixture
def gateways(executor: RequestExecutor):
    return default_gateways(executor)


@pytest.fixture
def redirects() -> MemoryRedirectStore:
    return MemoryRedirectStore()


@pytest.fixture
def checkout(orders, gateways, redirects, config) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(orders, gateways, redirects, config=config)


async def _reach_review(
    flow: CheckoutOrchestrator,
    denomination_id: str = "gi-330",
    quantity: int = 1,
) -> CheckoutOrchestrator:
    await flow.load_catalog()
    flow.select_product("genshin", denomination_id)
    flow.set_quantity(quantity)
    flow.confirm_product()
    flow.enter_credentials("player1", "hunter2", "buyer@example.com")
    return flow


@pytest.fixture
def reach_review():
    """Drive a checkout to REVIEWING_ORDER with valid input."""
    return _reach_review
