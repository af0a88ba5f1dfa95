"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings
from floorops.schemas.common import Severity, Station
from floorops.schemas.customer import CouponCreate, CustomerCreate, DiscountType
from floorops.schemas.inventory import InventoryItemCreate
from floorops.schemas.menu import Category, MenuItem, RecipeLine
from floorops.schemas.order import OrderCreate, OrderItemCreate
from floorops.schemas.table import TableCreate, Zone
from floorops.services.floor_engine import FloorEngine


@pytest.fixture
def settings() -> Settings:
    """Engine settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        vat_rate=Decimal("7"),
        category_station_mapping={"drinks": "bar"},
        debug=True,
    )


@pytest.fixture
def sink() -> NotificationSink:
    """Empty notification sink."""
    return NotificationSink(max_buffer=50)


@pytest.fixture
def engine(settings: Settings, sink: NotificationSink) -> FloorEngine:
    """Floor engine seeded with a small menu, stock, floor plan and customers.

    Menu:
        m-burger   100  food   kitchen  recipe: 1 beef, 1 bun
        m-fries     40  food   kitchen  no recipe
        m-latte     50  drinks bar      recipe: 1 beans, 0.25 milk
        m-mocktail  60  food   bar (item override)
    """
    engine = FloorEngine(settings=settings, sink=sink)

    engine.catalog.add_category(Category(id="food", name="Food"))
    engine.catalog.add_category(Category(id="drinks", name="Drinks"))

    for payload in [
        InventoryItemCreate(id="inv-beans", name="Coffee Beans", unit="kg", quantity=10, min_quantity=5),
        InventoryItemCreate(id="inv-milk", name="Milk", unit="l", quantity=20, min_quantity=2),
        InventoryItemCreate(id="inv-beef", name="Beef Patty", unit="pcs", quantity=50, min_quantity=10),
        InventoryItemCreate(id="inv-bun", name="Bun", unit="pcs", quantity=50, min_quantity=10),
    ]:
        engine.ledger.create_item(payload)

    engine.catalog.add_item(MenuItem(
        id="m-burger", name="Burger", price=Decimal("100"), category_id="food",
        recipe=[
            RecipeLine(inventory_item_id="inv-beef", quantity_per_unit=Decimal("1")),
            RecipeLine(inventory_item_id="inv-bun", quantity_per_unit=Decimal("1")),
        ],
    ))
    engine.catalog.add_item(MenuItem(id="m-fries", name="Fries", price=Decimal("40"), category_id="food"))
    engine.catalog.add_item(MenuItem(
        id="m-latte", name="Latte", price=Decimal("50"), category_id="drinks",
        recipe=[
            RecipeLine(inventory_item_id="inv-beans", quantity_per_unit=Decimal("1")),
            RecipeLine(inventory_item_id="inv-milk", quantity_per_unit=Decimal("0.25")),
        ],
    ))
    engine.catalog.add_item(MenuItem(
        id="m-mocktail", name="Mocktail", price=Decimal("60"), category_id="food", station=Station.BAR,
    ))

    engine.tables.add_zone(Zone(id="z-main", name="Main"))
    engine.tables.add_zone(Zone(id="z-terrace", name="Terrace"))
    for table_id in ("t1", "t2", "t3", "t4"):
        engine.tables.add_table(TableCreate(id=table_id, name=table_id.upper(), zone="Main"))

    engine.loyalty.add_customer(CustomerCreate(id="c-anna", name="Anna", phone="0811111111", points=450_000))
    engine.loyalty.add_customer(CustomerCreate(id="c-ben", name="Ben", phone="0822222222"))

    engine.loyalty.add_coupon(CouponCreate(code="welcome10", type=DiscountType.PERCENT, value=Decimal("10")))
    engine.loyalty.add_coupon(CouponCreate(code="LUNCH30K", type=DiscountType.AMOUNT, value=Decimal("30000")))
    engine.loyalty.add_coupon(CouponCreate(
        id="cp-dessert", code="FREE-DESSERT", type=DiscountType.AMOUNT,
        value=Decimal("79000"), point_cost=325_000,
    ))

    sink.clear()
    return engine


@pytest.fixture
def place_order(engine: FloorEngine):
    """Factory: place an order of ``(menu_id, quantity)`` lines on a table."""

    def _place(table_id="t1", lines=(("m-burger", 1),), **kwargs):
        payload = OrderCreate(
            table_id=table_id,
            items=[OrderItemCreate(menu_id=menu_id, quantity=qty) for menu_id, qty in lines],
            **kwargs,
        )
        return engine.orders.create_order(payload)

    return _place


@pytest.fixture
def stock_of(engine: FloorEngine):
    """Current on-hand quantity of an inventory item."""

    def _stock(item_id: str) -> Decimal:
        return engine.ledger.get_item(item_id).quantity

    return _stock


@pytest.fixture
def messages(sink: NotificationSink):
    """Notification messages, newest first, optionally filtered by minimum severity."""

    def _messages(severity: Severity = None):
        return [n.message for n in sink.recent(limit=1000, severity=severity)]

    return _messages
