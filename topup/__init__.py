"""
topup: async client core for a game top-up storefront.

    from topup import session as S    # Auth session, role resolution
    from topup import orders as O     # Catalog and order records
    from topup import payments as P   # Gateway adapters
    from topup import checkout as C   # Purchase state machine
"""

from topup import request
from topup import cache
from topup import idempotency
from topup import session
from topup import orders
from topup import payments
from topup import checkout
from topup.config import Timeouts, TopupConfig
from topup.log import configure_logging
from topup.storefront import Storefront, open_storefront
from topup._types import (
    Lazy,
    Pure,
    LCR,
    NoError,
    to_money,
)

__version__ = "0.1.0"

__all__ = (
    "request",
    "cache",
    "idempotency",
    "session",
    "orders",
    "payments",
    "checkout",
    "Timeouts",
    "TopupConfig",
    "configure_logging",
    "Storefront",
    "open_storefront",
    "Lazy",
    "Pure",
    "LCR",
    "NoError",
    "to_money",
)
