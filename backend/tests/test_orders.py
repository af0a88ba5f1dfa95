"""Tests for the order lifecycle: creation, item/station transitions, completion, voids."""

from decimal import Decimal

import pytest

from floorops.core.exceptions import InvalidStatusError
from floorops.schemas.common import OrderStatus, Severity, Station
from floorops.schemas.order import OrderCreate, OrderItemCreate
from floorops.schemas.table import TableStatus


def assert_order_invariants(engine):
    for order in engine.orders.list_orders():
        for station in Station:
            has_items = any(i.station == station for i in order.items)
            status = order.station_status(station)
            if order.status != OrderStatus.CANCELLED:
                assert (status == OrderStatus.NONE) == (not has_items), (order.id, station)
        if order.status != OrderStatus.CANCELLED and all(
            order.station_status(s) in (OrderStatus.SERVED, OrderStatus.NONE) for s in Station
        ):
            assert order.status in (OrderStatus.SERVED, OrderStatus.COMPLETED), order.id


# =============================================================================
# Creation
# =============================================================================


class TestCreateOrder:
    """Order registration from a terminal."""

    def test_snapshots_and_stations(self, engine, place_order):
        order = place_order(lines=[("m-burger", 2), ("m-latte", 1)])
        assert order.id.startswith("ord-")
        assert [i.name for i in order.items] == ["Burger", "Latte"]
        assert [i.station for i in order.items] == [Station.KITCHEN, Station.BAR]
        assert all(i.status == OrderStatus.PENDING for i in order.items)
        assert order.kitchen_status == OrderStatus.PENDING
        assert order.bar_status == OrderStatus.PENDING
        assert order.total == Decimal("250") * Decimal("1.07")

    def test_station_without_items_is_none(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1)])
        assert order.kitchen_status == OrderStatus.PENDING
        assert order.bar_status == OrderStatus.NONE

    def test_occupies_real_table(self, engine, place_order):
        place_order(table_id="t2")
        assert engine.tables.get_table("t2").status == TableStatus.OCCUPIED

    def test_takeout_never_touches_tables(self, engine, place_order):
        order = place_order(table_id="takeout-0001")
        assert order.status == OrderStatus.PENDING
        assert all(t.status == TableStatus.AVAILABLE for t in engine.tables.list_tables())

    def test_no_inventory_change_at_creation(self, engine, place_order, stock_of):
        place_order(lines=[("m-burger", 3)])
        assert stock_of("inv-beef") == Decimal("50")

    def test_submitted_snapshot_overrides_catalog(self, engine):
        order = engine.orders.create_order(OrderCreate(
            table_id="t1",
            items=[OrderItemCreate(menu_id="m-burger", name="Burger (promo)", price=Decimal("80"))],
            total=Decimal("85"),
        ))
        assert order.items[0].name == "Burger (promo)"
        assert order.items[0].price == Decimal("80")
        assert order.total == Decimal("85")

    def test_created_completed_awards_loyalty(self, engine, place_order, stock_of):
        order = place_order(
            table_id="takeout",
            status=OrderStatus.COMPLETED,
            customer_id="c-ben",
            points_earned=1_070,
        )
        assert order.status == OrderStatus.COMPLETED
        assert all(i.status == OrderStatus.SERVED for i in order.items)
        assert order.kitchen_status == OrderStatus.COMPLETED
        assert order.bar_status == OrderStatus.NONE
        assert stock_of("inv-beef") == Decimal("49")

        ben = engine.loyalty.get_customer("c-ben")
        assert ben.points == 1_070
        assert ben.visit_count == 1

    def test_created_completed_does_not_occupy(self, engine, place_order):
        place_order(table_id="t3", status=OrderStatus.COMPLETED)
        assert engine.tables.get_table("t3").status == TableStatus.AVAILABLE

    def test_other_initial_statuses_rejected(self):
        with pytest.raises(ValueError):
            OrderCreate(table_id="t1", items=[OrderItemCreate(menu_id="m-burger")], status=OrderStatus.SERVED)

    def test_empty_orders_rejected(self):
        with pytest.raises(ValueError):
            OrderCreate(table_id="t1", items=[])


# =============================================================================
# Item status
# =============================================================================


class TestSetItemStatus:
    """Per-item transitions and their ledger effects."""

    def test_serving_deducts_recipe(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 2)])
        updated = engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        assert stock_of("inv-beef") == Decimal("48")
        assert stock_of("inv-bun") == Decimal("48")
        assert updated.kitchen_status == OrderStatus.SERVED
        assert updated.status == OrderStatus.SERVED

    def test_same_status_is_noop(self, engine, place_order):
        order = place_order()
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        logs_before = len(engine.ledger.get_item("inv-beef").logs)

        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        assert len(engine.ledger.get_item("inv-beef").logs) == logs_before

    def test_unserving_restores(self, engine, place_order, stock_of):
        order = place_order()
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        updated = engine.orders.set_item_status(order.id, 0, OrderStatus.COOKING)
        assert stock_of("inv-beef") == Decimal("50")
        assert updated.kitchen_status == OrderStatus.COOKING
        assert updated.status == OrderStatus.SERVED

    def test_cooking_promotes_pending_order(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        updated = engine.orders.set_item_status(order.id, 1, OrderStatus.COOKING)
        assert updated.kitchen_status == OrderStatus.COOKING
        assert updated.status == OrderStatus.COOKING

    def test_partial_station_is_cooking(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        updated = engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        assert updated.kitchen_status == OrderStatus.COOKING
        assert updated.status == OrderStatus.COOKING

    def test_cancelled_item_keeps_station_open(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        engine.orders.set_item_status(order.id, 1, OrderStatus.CANCELLED)
        updated = engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        assert updated.kitchen_status == OrderStatus.COOKING
        assert updated.status == OrderStatus.COOKING

    @pytest.mark.parametrize("status", [OrderStatus.NONE, OrderStatus.COMPLETED, "bogus"])
    def test_invalid_status_raises(self, engine, place_order, status):
        order = place_order()
        with pytest.raises(InvalidStatusError):
            engine.orders.set_item_status(order.id, 0, status)

    def test_unknown_order_or_index(self, engine, place_order):
        assert engine.orders.set_item_status("ord-missing", 0, OrderStatus.SERVED) is None
        order = place_order()
        unchanged = engine.orders.set_item_status(order.id, 5, OrderStatus.SERVED)
        assert unchanged.items[0].status == OrderStatus.PENDING

    def test_terminal_order_ignored(self, engine, place_order, stock_of):
        order = place_order()
        engine.orders.void_order(order.id, "guest left")
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        assert stock_of("inv-beef") == Decimal("50")
        assert engine.orders.get_order(order.id).status == OrderStatus.CANCELLED

    def test_ledger_failure_leaves_order_untouched(self, engine, place_order, monkeypatch):
        order = place_order()

        def broken(order_id, item):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(engine.ledger, "deduct", broken)
        with pytest.raises(RuntimeError):
            engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        stored = engine.orders.get_order(order.id)
        assert stored.items[0].status == OrderStatus.PENDING
        assert stored.kitchen_status == OrderStatus.PENDING


# =============================================================================
# Station status
# =============================================================================


class TestSetStationStatus:
    """Bulk station transitions."""

    def test_serving_kitchen_leaves_bar_and_order_pending(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1), ("m-latte", 1)])
        updated = engine.orders.set_station_status(order.id, Station.KITCHEN, OrderStatus.SERVED)

        assert updated.kitchen_status == OrderStatus.SERVED
        assert updated.bar_status == OrderStatus.PENDING
        assert updated.status in (OrderStatus.PENDING, OrderStatus.COOKING)
        assert [i.status for i in updated.items] == [OrderStatus.SERVED, OrderStatus.SERVED, OrderStatus.PENDING]
        assert stock_of("inv-beef") == Decimal("49")
        assert stock_of("inv-beans") == Decimal("10")

        done = engine.orders.set_station_status(order.id, Station.BAR, OrderStatus.SERVED)
        assert done.status == OrderStatus.SERVED
        assert stock_of("inv-beans") == Decimal("9")
        assert stock_of("inv-milk") == Decimal("19.75")

    def test_already_served_items_not_deducted_twice(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 1), ("m-burger", 1)])
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        engine.orders.set_station_status(order.id, Station.KITCHEN, OrderStatus.SERVED)
        assert stock_of("inv-beef") == Decimal("48")

    def test_station_rollback_restores(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 1)])
        engine.orders.set_station_status(order.id, Station.KITCHEN, OrderStatus.SERVED)
        updated = engine.orders.set_station_status(order.id, Station.KITCHEN, OrderStatus.COOKING)
        assert stock_of("inv-beef") == Decimal("50")
        assert updated.kitchen_status == OrderStatus.COOKING

    def test_station_without_items_is_noop(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1)])
        updated = engine.orders.set_station_status(order.id, Station.BAR, OrderStatus.SERVED)
        assert updated.bar_status == OrderStatus.NONE
        assert updated.status == OrderStatus.PENDING

    def test_completed_order_untouched(self, engine, place_order):
        order = place_order(lines=[("m-latte", 1)])
        engine.orders.complete_order(order.id)
        updated = engine.orders.set_station_status(order.id, Station.BAR, OrderStatus.PENDING)
        assert updated.status == OrderStatus.COMPLETED
        assert updated.bar_status == OrderStatus.COMPLETED


# =============================================================================
# Completion, voids and item removal
# =============================================================================


class TestCompleteOrder:
    """Payment finalization."""

    def test_complete_marks_everything_and_frees_table(self, engine, place_order, stock_of):
        order = place_order(table_id="t1", lines=[("m-burger", 1), ("m-latte", 1)])
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        completed = engine.orders.complete_order(order.id)

        assert completed.status == OrderStatus.COMPLETED
        assert completed.kitchen_status == OrderStatus.COMPLETED
        assert completed.bar_status == OrderStatus.COMPLETED
        assert all(i.status == OrderStatus.SERVED for i in completed.items)
        assert stock_of("inv-beef") == Decimal("49")
        assert stock_of("inv-beans") == Decimal("9")
        assert engine.tables.get_table("t1").status == TableStatus.AVAILABLE

    def test_none_station_stays_none(self, engine, place_order):
        completed = engine.orders.complete_order(place_order(lines=[("m-fries", 1)]).id)
        assert completed.kitchen_status == OrderStatus.COMPLETED
        assert completed.bar_status == OrderStatus.NONE

    def test_table_kept_while_other_orders_active(self, engine, place_order):
        first = place_order(table_id="t1")
        place_order(table_id="t1", lines=[("m-fries", 1)])
        engine.orders.complete_order(first.id)
        assert engine.tables.get_table("t1").status == TableStatus.OCCUPIED

    def test_complete_is_idempotent(self, engine, place_order, stock_of):
        order = place_order()
        engine.orders.complete_order(order.id)
        engine.orders.complete_order(order.id)
        assert stock_of("inv-beef") == Decimal("49")

    def test_without_retroactive_deduction(self, settings, sink):
        from floorops.services.floor_engine import FloorEngine
        from floorops.schemas.inventory import InventoryItemCreate
        from floorops.schemas.menu import MenuItem, RecipeLine

        engine = FloorEngine(settings=settings.model_copy(update={"deduct_on_force_complete": False}), sink=sink)
        engine.ledger.create_item(InventoryItemCreate(id="inv-x", name="X", unit="pcs", quantity=5))
        engine.catalog.add_item(MenuItem(
            id="m-x", name="X", price=Decimal("1"), category_id="food",
            recipe=[RecipeLine(inventory_item_id="inv-x", quantity_per_unit=Decimal("1"))],
        ))
        order = engine.orders.create_order(OrderCreate(table_id="takeout", items=[OrderItemCreate(menu_id="m-x")]))
        engine.orders.complete_order(order.id)
        assert engine.ledger.get_item("inv-x").quantity == Decimal("5")


class TestVoidOrder:
    """Voids restore stock, reverse loyalty and release the table."""

    def test_void_restores_served_items(self, engine, place_order, stock_of, messages):
        order = place_order(table_id="t2", lines=[("m-burger", 1), ("m-latte", 1)])
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        voided = engine.orders.void_order(order.id, "Wrong table")

        assert voided.status == OrderStatus.CANCELLED
        assert voided.kitchen_status == OrderStatus.CANCELLED
        assert voided.bar_status == OrderStatus.CANCELLED
        assert all(i.status == OrderStatus.CANCELLED for i in voided.items)
        assert voided.void_reason == "Wrong table"
        assert stock_of("inv-beef") == Decimal("50")
        assert stock_of("inv-beans") == Decimal("10")
        assert engine.tables.get_table("t2").status == TableStatus.AVAILABLE
        assert f"Order #{order.id[-4:]} VOIDED. Reason: Wrong table" in messages(Severity.WARNING)

    def test_void_after_completion_restores_everything(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 2)])
        engine.orders.complete_order(order.id)
        assert stock_of("inv-beef") == Decimal("48")
        engine.orders.void_order(order.id, "Refund")
        assert stock_of("inv-beef") == Decimal("50")

    def test_void_reverses_completed_sale(self, engine, place_order):
        before = engine.loyalty.get_customer("c-anna")
        order = place_order(
            table_id="takeout",
            status=OrderStatus.COMPLETED,
            customer_id="c-anna",
            points_earned=60_000,
            points_redeemed=10_000,
        )
        after_sale = engine.loyalty.get_customer("c-anna")
        assert after_sale.points == 500_000
        assert after_sale.tier.value == "gold"

        engine.orders.void_order(order.id, "Customer complaint")
        reverted = engine.loyalty.get_customer("c-anna")
        assert reverted.points == max(0, after_sale.points - 60_000 + 10_000)
        assert reverted.points == before.points
        assert reverted.tier.value == "silver"
        assert reverted.visit_count == before.visit_count

    def test_void_reversal_floors_at_zero(self, engine, place_order):
        order = place_order(table_id="takeout", status=OrderStatus.COMPLETED, customer_id="c-ben", points_earned=100)
        engine.loyalty.update_loyalty("c-ben", -80)
        engine.orders.void_order(order.id, "Test")
        ben = engine.loyalty.get_customer("c-ben")
        assert ben.points == 0
        assert ben.visit_count == 0

    def test_void_of_pending_order_leaves_loyalty(self, engine, place_order):
        order = place_order(customer_id="c-ben")
        engine.orders.void_order(order.id, "Test")
        assert engine.loyalty.get_customer("c-ben").visit_count == 0

    def test_second_void_is_noop(self, engine, place_order, stock_of):
        order = place_order()
        engine.orders.complete_order(order.id)
        engine.orders.void_order(order.id, "first")
        engine.orders.void_order(order.id, "second")
        assert stock_of("inv-beef") == Decimal("50")
        assert engine.orders.get_order(order.id).void_reason == "first"

    def test_unknown_order(self, engine):
        assert engine.orders.void_order("ord-missing", "x") is None


class TestRemoveOrderItem:
    """Line removal."""

    def test_total_recomputed_with_vat(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 2)])
        result = engine.orders.remove_order_item(order.id, 0)
        assert result.success
        assert result.data.total == Decimal("80") * Decimal("1.07")
        assert [i.menu_id for i in result.data.items] == ["m-fries"]

    def test_removing_served_item_restores(self, engine, place_order, stock_of):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        engine.orders.remove_order_item(order.id, 0)
        assert stock_of("inv-beef") == Decimal("50")

    def test_removing_last_bar_item_sets_station_none(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-latte", 1)])
        result = engine.orders.remove_order_item(order.id, 1)
        assert result.data.bar_status == OrderStatus.NONE

    def test_removing_unserved_item_can_complete_service(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        engine.orders.set_item_status(order.id, 0, OrderStatus.SERVED)
        result = engine.orders.remove_order_item(order.id, 1)
        assert result.data.status == OrderStatus.SERVED

    def test_removing_last_item_cancels_and_frees_table(self, engine, place_order, messages):
        order = place_order(table_id="t3")
        result = engine.orders.remove_order_item(order.id, 0)
        assert result.data.status == OrderStatus.CANCELLED
        assert result.data.void_reason == "All items removed"
        assert result.data.total == Decimal("0")
        assert engine.tables.get_table("t3").status == TableStatus.AVAILABLE
        assert "Item removed from order" in messages()

    def test_discount_reclamped(self, engine, place_order):
        order = place_order(lines=[("m-burger", 1), ("m-fries", 1)])
        engine.orders.set_discount(order.id, Decimal("100"))
        result = engine.orders.remove_order_item(order.id, 0)
        assert result.data.discount == result.data.total

    def test_declined_on_terminal_or_missing(self, engine, place_order):
        order = place_order()
        engine.orders.complete_order(order.id)
        assert not engine.orders.remove_order_item(order.id, 0).success
        assert not engine.orders.remove_order_item("ord-missing", 0).success
        assert len(engine.orders.get_order(order.id).items) == 1


class TestOrderAttributes:
    """Discounts, queries and the status invariants across a busy service."""

    def test_discount_clamped_to_total(self, engine, place_order, messages):
        order = place_order()
        assert engine.orders.set_discount(order.id, Decimal("500")).discount == order.total
        assert engine.orders.set_discount(order.id, Decimal("-5")).discount == Decimal("0")
        assert "Discount updated" in messages()

    def test_queries(self, engine, place_order):
        a = place_order(table_id="t1")
        b = place_order(table_id="t1", lines=[("m-fries", 1)])
        place_order(table_id="t2")
        engine.orders.complete_order(a.id)

        assert [o.id for o in engine.orders.active_orders_for_table("t1")] == [b.id]
        assert len(engine.orders.list_orders(table_id="t1")) == 2
        assert [o.id for o in engine.orders.list_orders(status=OrderStatus.COMPLETED)] == [a.id]
        assert engine.orders.has_active_orders("t1")
        assert not engine.orders.has_active_orders("t1", excluding_order_id=b.id)

    def test_snapshots_are_copies(self, engine, place_order):
        order = place_order()
        order.items[0].status = OrderStatus.SERVED
        assert engine.orders.get_order(order.id).items[0].status == OrderStatus.PENDING

    def test_invariants_hold_through_a_service(self, engine, place_order):
        o1 = place_order(table_id="t1", lines=[("m-burger", 1), ("m-latte", 1), ("m-mocktail", 1)])
        o2 = place_order(table_id="t2", lines=[("m-fries", 2)])
        o3 = place_order(table_id="t3", lines=[("m-latte", 2)])

        engine.orders.set_item_status(o1.id, 0, OrderStatus.COOKING)
        assert_order_invariants(engine)
        engine.orders.set_station_status(o1.id, Station.BAR, OrderStatus.SERVED)
        assert_order_invariants(engine)
        engine.orders.set_item_status(o1.id, 0, OrderStatus.SERVED)
        assert_order_invariants(engine)
        engine.orders.set_station_status(o2.id, Station.KITCHEN, OrderStatus.SERVED)
        engine.orders.remove_order_item(o3.id, 0)
        assert_order_invariants(engine)
        engine.orders.set_item_status(o3.id, 0, OrderStatus.SERVED)
        engine.orders.complete_order(o2.id)
        engine.orders.void_order(o3.id, "test")
        assert_order_invariants(engine)
