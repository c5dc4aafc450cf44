"""
Wire: HTTP surface for the redirect gateway round trip.

    app = storefront.app()
    # uvicorn.run(app)
"""

from topup.wire._types import status_code_for, ReturnIn, CancelIn, OutcomeOut
from topup.wire._app import RETURN_PATH, CANCEL_PATH, add_return_routes, create_app

__all__ = (
    "status_code_for",
    "ReturnIn",
    "CancelIn",
    "OutcomeOut",
    "RETURN_PATH",
    "CANCEL_PATH",
    "add_return_routes",
    "create_app",
)
