"""
FastAPI app serving the gateway return and cancel targets.

    GET /payment/paypal/return?token=...&orderId=...
    GET /payment/paypal/cancel?orderId=...
"""

from typing import Annotated

import fastapi
import structlog
from fastapi.responses import JSONResponse

from topup.checkout import ReturnHandler
from topup.log import configure_logging
from topup.wire._types import CancelIn, OutcomeOut, ReturnIn

logger = structlog.get_logger(__name__)

RETURN_PATH = "/payment/paypal/return"
CANCEL_PATH = "/payment/paypal/cancel"


def _respond(dto: OutcomeOut, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=dto.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def add_return_routes(app: fastapi.FastAPI, handler: ReturnHandler) -> None:
    async def paypal_return(
        token: str | None = None,
        order_id: Annotated[str | None, fastapi.Query(alias="orderId")] = None,
    ) -> JSONResponse:
        req = ReturnIn(token=token, order_id=order_id)
        result = await handler.handle_return(*req.to_domain())
        dto, status_code = OutcomeOut.from_domain(result)
        logger.info("wire.paypal_return", order_id=order_id, status=dto.status, code=status_code)
        return _respond(dto, status_code)

    async def paypal_cancel(
        order_id: Annotated[str | None, fastapi.Query(alias="orderId")] = None,
    ) -> JSONResponse:
        req = CancelIn(order_id=order_id)
        result = await handler.handle_cancel(req.to_domain())
        dto, status_code = OutcomeOut.from_domain(result)
        logger.info("wire.paypal_cancel", order_id=order_id, status=dto.status, code=status_code)
        return _respond(dto, status_code)

    app.get(RETURN_PATH)(paypal_return)
    app.get(CANCEL_PATH)(paypal_cancel)


def create_app(handler: ReturnHandler, *, log_level: str | None = None) -> fastapi.FastAPI:
    if log_level is not None:
        configure_logging(log_level)
    app = fastapi.FastAPI(title="topup gateway returns")
    add_return_routes(app, handler)
    return app


__all__ = ("RETURN_PATH", "CANCEL_PATH", "add_return_routes", "create_app")
