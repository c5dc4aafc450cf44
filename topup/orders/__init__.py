"""
Orders: catalog listing and order records.

    from topup import orders as O

    repo = O.OrderRepository(executor)
    match await repo.list_products():
        case Ok(catalog):
            ...
    denomination = catalog.denominations_for(game_id)[0]

    new = O.NewOrder(
        game_id=game_id,
        denomination_id=denomination.id,
        credentials=O.GameCredentials("player1", "hunter2"),
        customer_email="player@example.com",
        quantity=5,
        price_per_unit=denomination.display_price,
    )
    order = await repo.create(new)
"""

from topup.orders._types import (
    ALLOWED_QUANTITIES,
    EMAIL_PATTERN,
    Game,
    Denomination,
    Catalog,
    OrderStatus,
    PaymentStatus,
    GameCredentials,
    order_total,
    NewOrder,
    Order,
    validate_email,
    validate_quantity,
    OrderErrorKind,
    OrderError,
)
from topup.orders._repository import OrderRepository, order_error_from

__all__ = (
    "ALLOWED_QUANTITIES",
    "EMAIL_PATTERN",
    "Game",
    "Denomination",
    "Catalog",
    "OrderStatus",
    "PaymentStatus",
    "GameCredentials",
    "order_total",
    "NewOrder",
    "Order",
    "validate_email",
    "validate_quantity",
    "OrderErrorKind",
    "OrderError",
    "OrderRepository",
    "order_error_from",
)
