"""Order schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from floorops.schemas.common import (
    TERMINAL_STATUSES,
    OrderStatus,
    PaymentMethod,
    Station,
    utcnow,
)
from floorops.schemas.customer import PriceQuote


class OrderItem(BaseModel):
    """Line of an order.

    ``name`` and ``price`` are snapshots taken when the order is created.
    ``station`` is resolved at the same time so later catalog edits do not
    move an item between displays.
    """

    menu_id: str
    name: str
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)
    note: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    station: Station = Station.KITCHEN

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Order(BaseModel):
    """Order as tracked by the lifecycle manager."""

    id: str
    table_id: str
    items: List[OrderItem]
    status: OrderStatus = OrderStatus.PENDING
    kitchen_status: OrderStatus = OrderStatus.NONE
    bar_status: OrderStatus = OrderStatus.NONE
    total: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    void_reason: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    points_earned: int = 0
    points_redeemed: int = 0
    loyalty_applied: bool = False
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    @property
    def amount_due(self) -> Decimal:
        return self.total - self.discount

    @property
    def short_id(self) -> str:
        return self.id[-4:]

    def station_status(self, station: Station) -> OrderStatus:
        return self.kitchen_status if station == Station.KITCHEN else self.bar_status


class OrderItemCreate(BaseModel):
    """Order line as submitted by a terminal.

    Name and price default to the catalog values when omitted.
    """

    menu_id: str
    quantity: int = Field(default=1, ge=1)
    note: Optional[str] = None
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)


class OrderCreate(BaseModel):
    """Order creation schema."""

    table_id: str = Field(..., min_length=1)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    status: OrderStatus = OrderStatus.PENDING
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    total: Optional[Decimal] = Field(default=None, ge=0)
    points_earned: int = Field(default=0, ge=0)
    points_redeemed: int = Field(default=0, ge=0)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: OrderStatus) -> OrderStatus:
        if v not in (OrderStatus.PENDING, OrderStatus.COMPLETED):
            raise ValueError("Orders are created either pending or completed")
        return v


class CheckoutResult(BaseModel):
    """Outcome of settling a table or a set of orders."""

    table_id: Optional[str] = None
    order_ids: List[str] = []
    settlement_order_id: Optional[str] = None
    customer_id: Optional[str] = None
    payment_method: PaymentMethod
    quote: PriceQuote
    points_earned: int = 0
    points_redeemed: int = 0
    coupon_code: Optional[str] = None
