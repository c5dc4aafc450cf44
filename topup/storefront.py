"""
Storefront: the composition root.

Builds every long-lived collaborator once and hands them out explicitly.

    async with await open_storefront(TopupConfig.from_env()) as shop:
        await shop.session.bootstrap()
        checkout = shop.checkout()
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType

import fastapi
import httpx
import structlog

from topup.checkout import (
    CheckoutOrchestrator,
    MemoryRedirectStore,
    RedirectStore,
    ReturnHandler,
    SQLAlchemyRedirectStore,
)
from topup.config import TopupConfig
from topup.idempotency import StoreAny
from topup.orders import OrderRepository
from topup.payments import GatewayRegistry, default_gateways
from topup.request import RequestExecutor
from topup.session import HttpAuthProvider, SessionManager, TokenStore
from topup.wire import create_app

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class Storefront:
    config: TopupConfig
    client: httpx.AsyncClient
    executor: RequestExecutor
    session: SessionManager
    orders: OrderRepository
    gateways: GatewayRegistry
    redirects: RedirectStore
    _owns_client: bool = True

    def checkout(self) -> CheckoutOrchestrator:
        """A fresh checkout sharing this storefront's collaborators."""
        return CheckoutOrchestrator(self.orders, self.gateways, self.redirects, config=self.config)

    def return_handler(self) -> ReturnHandler:
        return ReturnHandler(self.orders, self.gateways, self.redirects, config=self.config)

    def app(self) -> fastapi.FastAPI:
        """ASGI app for the gateway return and cancel targets, logging at config.log_level."""
        return create_app(self.return_handler(), log_level=self.config.log_level)

    async def aclose(self) -> None:
        await self.session.close()
        if isinstance(self.redirects, SQLAlchemyRedirectStore):
            await self.redirects.dispose()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> Storefront:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def open_storefront(
    config: TopupConfig | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    redirects: RedirectStore | None = None,
    tokens: TokenStore | None = None,
    capture_store: StoreAny | None = None,
    durable_redirects: bool = True,
) -> Storefront:
    """
    Wire the storefront.

    Redirect records go to config.redirect_db_url unless a store is passed
    or durable_redirects is False (in-memory, single process).
    """
    config = config or TopupConfig()
    owns_client = client is None
    http = client if client is not None else httpx.AsyncClient()

    executor = RequestExecutor(http, config)
    provider = HttpAuthProvider(executor, config, tokens)
    session = SessionManager(provider, config)
    executor.bind_token_source(session.access_token)

    if redirects is None:
        redirects = (
            await SQLAlchemyRedirectStore.create(config.redirect_db_url)
            if durable_redirects
            else MemoryRedirectStore()
        )

    logger.info("storefront.opened", api=config.api_base_url, durable_redirects=durable_redirects)
    return Storefront(
        config=config,
        client=http,
        executor=executor,
        session=session,
        orders=OrderRepository(executor),
        gateways=default_gateways(executor, capture_store=capture_store),
        redirects=redirects,
        _owns_client=owns_client,
    )


__all__ = ("Storefront", "open_storefront")
