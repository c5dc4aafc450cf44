"""
OrderRepository: catalog and order records through RequestExecutor.

Reads go through a client-side read-through cache. The cache only ever
holds what the backend returned; totals are never computed here.
"""

from __future__ import annotations

from typing import Any

import structlog
from kungfu import LazyCoroResult, Result, Ok, Error
from pydantic import BaseModel, ValidationError

from topup.cache import CacheExecutor, LocalTier, cache
from topup.request import (
    Budget,
    CancelToken,
    RequestError,
    RequestErrorKind,
    RequestExecutor,
    Response,
)
from topup.orders._types import (
    Catalog,
    NewOrder,
    Order,
    OrderError,
    OrderErrorKind,
    validate_email,
    validate_quantity,
)
from topup.orders._wire import CatalogOut, CreateOrderIn, FulfillIn, OrderEnvelope

logger = structlog.get_logger(__name__)


def order_error_from(err: RequestError) -> OrderError:
    match err.kind:
        case RequestErrorKind.VALIDATION:
            return OrderError(OrderErrorKind.VALIDATION, err.message)
        case RequestErrorKind.TIMEOUT:
            return OrderError(OrderErrorKind.TIMEOUT, err.message)
        case RequestErrorKind.ABORTED:
            return OrderError(OrderErrorKind.ABORTED, err.message)
        case RequestErrorKind.NETWORK:
            return OrderError(OrderErrorKind.NETWORK, err.message)
        case RequestErrorKind.HTTP if err.status == 404:
            return OrderError(OrderErrorKind.NOT_FOUND, err.message, err.status)
        case RequestErrorKind.HTTP if err.status in (401, 403):
            return OrderError(OrderErrorKind.UNAUTHORIZED, err.message, err.status)
        case RequestErrorKind.HTTP if err.status is not None and err.status < 500:
            return OrderError(OrderErrorKind.VALIDATION, err.message, err.status)
        case _:
            return OrderError(OrderErrorKind.SERVER, err.message, err.status)


def _decode[M: BaseModel](model: type[M], resp: Response) -> Result[M, OrderError]:
    try:
        return Ok(model.model_validate(resp.json_object()))
    except ValidationError as e:
        logger.warning("orders.malformed_payload", model=model.__name__, errors=e.errors(include_input=False))
        return Error(OrderError(OrderErrorKind.SERVER, "Malformed response from order service"))


def _validate_new(new: NewOrder) -> OrderError | None:
    match validate_quantity(new.quantity):
        case Error(message):
            return OrderError(OrderErrorKind.VALIDATION, message)
        case Ok(_):
            pass
    match validate_email(new.customer_email):
        case Error(message):
            return OrderError(OrderErrorKind.VALIDATION, message)
        case Ok(_):
            pass
    if not new.credentials.username.strip() or not new.credentials.password:
        return OrderError(OrderErrorKind.VALIDATION, "Game login username and password are required")
    if new.price_per_unit <= 0:
        return OrderError(OrderErrorKind.VALIDATION, "Price must be positive")
    return None


class OrderRepository:
    """
    Example:
        repo = OrderRepository(executor)

        match await repo.create(new_order):
            case Ok(order):
                again = await repo.get(order.id)
            case Error(OrderError(kind=OrderErrorKind.TIMEOUT)):
                offer_retry()
    """

    def __init__(
        self,
        executor: RequestExecutor,
        *,
        catalog_ttl: float | None = 60.0,
        order_ttl: float | None = 30.0,
        max_orders: int | None = None,
    ) -> None:
        self._executor = executor
        self._catalog: CacheExecutor[None, Catalog, OrderError] = (
            cache(lambda _: "catalog", self._fetch_catalog)
            .tier(LocalTier(max_size=1, ttl=catalog_ttl))
            .build()
        )
        self._orders: CacheExecutor[str, Order, OrderError] = (
            cache(lambda order_id: f"order:{order_id}", self._fetch_order)
            .tier(
                LocalTier(
                    max_size=max_orders or executor.config.catalog_cache_size,
                    ttl=order_ttl,
                )
            )
            .build()
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Fetches (cache misses)
    # ───────────────────────────────────────────────────────────────────────────

    def _fetch_catalog(self, _: Any) -> LazyCoroResult[Catalog, OrderError]:
        async def execute() -> Result[Catalog, OrderError]:
            match await self._executor.get("/products", budget=Budget.READ):
                case Error(err):
                    return Error(order_error_from(err))
                case Ok(resp):
                    decoded = _decode(CatalogOut, resp)
            match decoded:
                case Ok(dto):
                    return Ok(dto.to_domain())
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    def _fetch_order(
        self, order_id: str, cancel: CancelToken | None = None
    ) -> LazyCoroResult[Order, OrderError]:
        async def execute() -> Result[Order, OrderError]:
            if not order_id:
                return Error(OrderError(OrderErrorKind.VALIDATION, "Order id is required"))
            match await self._executor.get(f"/orders/{order_id}", budget=Budget.READ, cancel=cancel):
                case Error(err):
                    return Error(order_error_from(err))
                case Ok(resp):
                    return self._order_from(resp)

        return LazyCoroResult(execute)

    @staticmethod
    def _order_from(resp: Response) -> Result[Order, OrderError]:
        match _decode(OrderEnvelope, resp):
            case Ok(envelope):
                return Ok(envelope.order.to_domain())
            case Error(e):
                return Error(e)

    # ───────────────────────────────────────────────────────────────────────────
    # Operations
    # ───────────────────────────────────────────────────────────────────────────

    def list_products(self, *, refresh: bool = False) -> LazyCoroResult[Catalog, OrderError]:
        """GET /products, cached."""

        async def execute() -> Result[Catalog, OrderError]:
            if refresh:
                await self._catalog.invalidate(None)
            match await self._catalog.get(None):
                case Ok(hit):
                    return Ok(hit.value)
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    def create(
        self, new: NewOrder, *, cancel: CancelToken | None = None
    ) -> LazyCoroResult[Order, OrderError]:
        """
        POST /orders. Validates locally first; invalid input never hits the network.

        Exactly one request per call, no retries.
        """

        async def execute() -> Result[Order, OrderError]:
            invalid = _validate_new(new)
            if invalid is not None:
                return Error(invalid)

            body = CreateOrderIn.from_domain(new).to_json()
            match await self._executor.post("/orders", body, budget=Budget.WRITE, cancel=cancel):
                case Error(err):
                    return Error(order_error_from(err))
                case Ok(resp):
                    created = self._order_from(resp)

            match created:
                case Ok(order):
                    await self._orders.put(order.id, order)
                    logger.info("orders.created", order_id=order.id, quantity=order.quantity)
                    return Ok(order)
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    def get(
        self,
        order_id: str,
        *,
        fresh: bool = False,
        cancel: CancelToken | None = None,
    ) -> LazyCoroResult[Order, OrderError]:
        """GET /orders/{id}. fresh=True bypasses and refreshes the cache."""
        async def execute() -> Result[Order, OrderError]:
            if not fresh and cancel is None:
                match await self._orders.get(order_id):
                    case Ok(hit):
                        return Ok(hit.value)
                    case Error(e):
                        return Error(e)
            match await self._fetch_order(order_id, cancel):
                case Ok(order):
                    await self._orders.put(order_id, order)
                    return Ok(order)
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    def fulfill(
        self, order_id: str, notes: str | None = None
    ) -> LazyCoroResult[Order, OrderError]:
        """POST /orders/{id}/fulfill (admin/cs). Returns the refreshed order."""

        async def execute() -> Result[Order, OrderError]:
            body = FulfillIn(fulfillment_notes=notes).model_dump()
            match await self._executor.post(f"/orders/{order_id}/fulfill", body, budget=Budget.WRITE):
                case Error(err):
                    return Error(order_error_from(err))
                case Ok(_):
                    pass
            return await self.get(order_id, fresh=True)

        return LazyCoroResult(execute)

    async def invalidate(self, order_id: str) -> bool:
        return await self._orders.invalidate(order_id)


__all__ = ("OrderRepository", "order_error_from")
