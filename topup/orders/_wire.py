"""
Order wire models: backend JSON in both snake_case and camelCase.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from topup._types import to_money
from topup.orders._types import (
    Catalog,
    Denomination,
    Game,
    NewOrder,
    Order,
    OrderStatus,
    PaymentStatus,
    order_total,
)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _In(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class GameOut(_In):
    id: str
    name: str
    region_code: str | None = Field(default=None, validation_alias=_alias("region_code", "regionCode"))
    description: str | None = None
    is_archived: bool = Field(default=False, validation_alias=_alias("is_archived", "isArchived"))

    def to_domain(self) -> Game:
        return Game(
            id=self.id,
            name=self.name,
            region_code=self.region_code,
            description=self.description,
            is_archived=self.is_archived,
        )


class DenominationOut(_In):
    id: str
    game_id: str = Field(validation_alias=_alias("game_id", "gameId"))
    platform_id: str | None = Field(default=None, validation_alias=_alias("platform_id", "platformId"))
    name: str
    display_price: Decimal = Field(validation_alias=_alias("display_price", "displayPrice", "price"))
    is_available: bool = Field(default=True, validation_alias=_alias("is_available", "isAvailable"))
    is_archived: bool = Field(default=False, validation_alias=_alias("is_archived", "isArchived"))

    def to_domain(self) -> Denomination:
        return Denomination(
            id=self.id,
            game_id=self.game_id,
            platform_id=self.platform_id,
            name=self.name,
            display_price=to_money(self.display_price),
            is_available=self.is_available,
            is_archived=self.is_archived,
        )


class CatalogOut(_In):
    games: list[GameOut] = Field(default_factory=list)
    denominations: list[DenominationOut] = Field(default_factory=list)

    def to_domain(self) -> Catalog:
        return Catalog(
            games=tuple(g.to_domain() for g in self.games),
            denominations=tuple(d.to_domain() for d in self.denominations),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderOut(_In):
    id: str
    game_id: str = Field(validation_alias=_alias("game_id", "gameId"))
    denomination_id: str = Field(validation_alias=_alias("denomination_id", "denominationId"))
    customer_email: str = Field(validation_alias=_alias("customer_email", "customerEmail"))
    customer_phone: str | None = Field(default=None, validation_alias=_alias("customer_phone", "customerPhone"))
    quantity: int = Field(ge=1, le=100)
    price_per_unit: Decimal | None = Field(default=None, validation_alias=_alias("price_per_unit", "pricePerUnit"))
    total_price: Decimal = Field(validation_alias=_alias("total_price", "totalPrice"))
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.PENDING, validation_alias=_alias("payment_status", "paymentStatus")
    )
    payment_gateway: str | None = Field(
        default=None, validation_alias=_alias("payment_gateway", "paymentGateway", "payment_method")
    )
    gateway_transaction_id: str | None = Field(
        default=None, validation_alias=_alias("gateway_transaction_id", "gatewayTransactionId")
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=_alias("created_at", "createdAt"),
    )
    paid_at: datetime | None = Field(default=None, validation_alias=_alias("paid_at", "paidAt"))
    fulfilled_at: datetime | None = Field(default=None, validation_alias=_alias("fulfilled_at", "fulfilledAt"))
    notes: str | None = None

    @model_validator(mode="after")
    def _totals_agree(self) -> OrderOut:
        total = to_money(self.total_price)
        if self.price_per_unit is None:
            self.price_per_unit = to_money(total / self.quantity)
        if order_total(self.price_per_unit, self.quantity) != total:
            raise ValueError(
                f"total_price {total} != price_per_unit {self.price_per_unit} x {self.quantity}"
            )
        return self

    def to_domain(self) -> Order:
        unit = self.price_per_unit if self.price_per_unit is not None else self.total_price / self.quantity
        return Order(
            id=self.id,
            game_id=self.game_id,
            denomination_id=self.denomination_id,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
            quantity=self.quantity,
            price_per_unit=to_money(unit),
            total_price=to_money(self.total_price),
            status=self.status,
            payment_status=self.payment_status,
            payment_gateway=self.payment_gateway,
            gateway_transaction_id=self.gateway_transaction_id,
            created_at=self.created_at,
            paid_at=self.paid_at,
            fulfilled_at=self.fulfilled_at,
            notes=self.notes,
        )


class OrderEnvelope(_In):
    order: OrderOut


class CreateOrderIn(BaseModel):
    """POST /orders body. Totals are advisory: the backend recomputes them."""

    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(serialization_alias="gameId")
    denomination_id: str = Field(serialization_alias="denominationId")
    game_login_username: str
    game_login_password: str
    customer_email: str
    customer_phone: str | None = None
    quantity: int
    notes: str | None = None
    price_per_unit: float = Field(serialization_alias="pricePerUnit")
    total_price: float = Field(serialization_alias="totalPrice")

    @classmethod
    def from_domain(cls, new: NewOrder) -> CreateOrderIn:
        return cls(
            game_id=new.game_id,
            denomination_id=new.denomination_id,
            game_login_username=new.credentials.username,
            game_login_password=new.credentials.password,
            customer_email=new.customer_email,
            customer_phone=new.customer_phone,
            quantity=new.quantity,
            notes=new.notes,
            price_per_unit=float(new.price_per_unit),
            total_price=float(new.total_price),
        )

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FulfillIn(BaseModel):
    fulfillment_notes: str | None = None


__all__ = (
    "GameOut",
    "DenominationOut",
    "CatalogOut",
    "OrderOut",
    "OrderEnvelope",
    "CreateOrderIn",
    "FulfillIn",
)
