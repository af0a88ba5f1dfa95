"""Order Lifecycle Manager.

Tracks orders from the moment a terminal sends them to the stations until
they are paid or voided:
- per-item status drives per-station status, which drives the order status
- SERVED <-> non-SERVED item transitions deduct or restore inventory
- completion and voids hand the table back to the topology manager

Every mutation works on a copy of the order and only replaces the stored
order once the inventory side effects have succeeded; if they fail, the
ledger changes already made are compensated and the stored order is left
as it was.
"""

import logging
import threading
from contextlib import nullcontext
from decimal import Decimal
from typing import Dict, List, Optional

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings, get_settings
from floorops.core.exceptions import InvalidStatusError
from floorops.core.locks import KeyedLocks
from floorops.schemas.common import (
    TERMINAL_STATUSES,
    OperationResult,
    OrderStatus,
    PaymentMethod,
    Severity,
    Station,
    new_id,
)
from floorops.schemas.inventory import InventoryLogEntry
from floorops.schemas.order import Order, OrderCreate, OrderItem
from floorops.services.inventory_ledger import InventoryLedger
from floorops.services.menu_catalog import MenuCatalog
from floorops.services.station_service import StationClassifier
from floorops.services.status_reducers import aggregate_station_status, derive_global_status

logger = logging.getLogger(__name__)

ITEM_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.COOKING,
    OrderStatus.SERVED,
    OrderStatus.CANCELLED,
})

ALL_ITEMS_REMOVED = "All items removed"


class OrderLifecycleManager:
    """Owns orders and applies their status transitions."""

    def __init__(
        self,
        catalog: MenuCatalog,
        ledger: InventoryLedger,
        classifier: Optional[StationClassifier] = None,
        loyalty=None,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.ledger = ledger
        self.classifier = classifier or StationClassifier(catalog, self.settings)
        self.loyalty = loyalty
        self.sink = sink
        self._tables = None
        self._orders: Dict[str, Order] = {}
        self._store_lock = threading.Lock()
        self._locks = KeyedLocks(reentrant=True)

    def bind_tables(self, tables) -> None:
        """Attach the table topology manager once both sides exist."""
        self._tables = tables

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            return order.model_copy(deep=True) if order else None

    def list_orders(self, status: Optional[OrderStatus] = None, table_id: Optional[str] = None) -> List[Order]:
        """Newest first."""
        with self._store_lock:
            orders = list(self._orders.values())
        if status is not None:
            orders = [o for o in orders if o.status == status]
        if table_id is not None:
            orders = [o for o in orders if o.table_id == table_id]
        orders.sort(key=lambda o: o.timestamp, reverse=True)
        return [o.model_copy(deep=True) for o in orders]

    def active_orders_for_table(self, table_id: str) -> List[Order]:
        return [o for o in self.list_orders(table_id=table_id) if o.is_active]

    def has_active_orders(self, table_id: str, excluding_order_id: Optional[str] = None) -> bool:
        with self._store_lock:
            return any(
                o.table_id == table_id and o.id != excluding_order_id and o.is_active
                for o in self._orders.values()
            )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(self, payload: OrderCreate) -> Order:
        """Register an order sent from a terminal.

        Items start PENDING, or SERVED when the order is created already
        completed (an instant takeout sale). A non-terminal order on a real
        table occupies it. A completed order with a customer awards its
        points and a visit straight away.
        """
        completed = payload.status == OrderStatus.COMPLETED
        item_status = OrderStatus.SERVED if completed else OrderStatus.PENDING

        routing = {
            index: station
            for station, indices in self.classifier.partition(line.menu_id for line in payload.items).items()
            for index in indices
        }
        items = []
        for index, line in enumerate(payload.items):
            menu_item = self.catalog.get_item(line.menu_id)
            if menu_item is None and (line.name is None or line.price is None):
                logger.warning(f"Menu item {line.menu_id} not in catalog, using submitted snapshot")
            items.append(
                OrderItem(
                    menu_id=line.menu_id,
                    name=line.name or (menu_item.name if menu_item else line.menu_id),
                    quantity=line.quantity,
                    price=line.price if line.price is not None else (menu_item.price if menu_item else Decimal("0")),
                    note=line.note,
                    status=item_status,
                    station=routing[index],
                )
            )

        order = Order(
            id=payload.order_id or new_id("ord"),
            table_id=payload.table_id,
            items=items,
            status=payload.status,
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            payment_method=payload.payment_method,
            points_earned=payload.points_earned,
            points_redeemed=payload.points_redeemed,
        )
        order.total = payload.total if payload.total is not None else self._total_for(order)
        order.discount = min(payload.discount, order.total)
        order.loyalty_applied = bool(completed and order.customer_id and self.loyalty is not None)
        self._recompute_stations(order)
        if completed:
            for station in Station:
                if order.station_status(station) != OrderStatus.NONE:
                    self._set_station_field(order, station, OrderStatus.COMPLETED)

        real_table = not self.settings.is_takeout(order.table_id)
        guard = self._tables.locked() if (self._tables is not None and real_table) else nullcontext()
        with guard:
            with self._locks.hold(order.id):
                with self._store_lock:
                    if order.id in self._orders:
                        raise ValueError(f"Order {order.id} already exists")
                    self._orders[order.id] = order
                if completed and self.settings.deduct_on_force_complete:
                    try:
                        self._deduct_items(order, order.items)
                    except Exception:
                        with self._store_lock:
                            del self._orders[order.id]
                        raise

            if real_table and not completed and self._tables is not None:
                self._tables.occupy(order.table_id)

            if order.loyalty_applied:
                self.loyalty.award_and_record(
                    order.customer_id,
                    order.points_earned,
                    order.points_redeemed,
                    increment_visit=True,
                )

        logger.info(
            f"Created order {order.id} on {order.table_id}: {len(items)} items, total {order.total}, "
            f"status {order.status.value}"
        )
        return order.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def set_item_status(self, order_id: str, item_index: int, status: OrderStatus) -> Optional[Order]:
        """Move one item to ``status`` and re-derive station and order status."""
        status = self._validate_item_status(status)
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            if order.status in TERMINAL_STATUSES:
                logger.warning(f"Ignoring item update on {order.status.value} order {order_id}")
                return order.model_copy(deep=True)
            if not 0 <= item_index < len(order.items):
                logger.debug(f"Order {order_id} has no item {item_index}")
                return order.model_copy(deep=True)
            if order.items[item_index].status == status:
                return order.model_copy(deep=True)

            updated = order.model_copy(deep=True)
            item = updated.items[item_index]
            previous = item.status
            self._transition_items(updated, [item], status)
            self._recompute_stations(updated)
            updated.status = derive_global_status(updated.status, updated.kitchen_status, updated.bar_status)
            self._commit(updated)

        logger.info(
            f"Order {order_id} item {item_index} ({item.name}): {previous.value} -> {status.value}; "
            f"order {updated.status.value}"
        )
        return updated.model_copy(deep=True)

    def set_station_status(self, order_id: str, station: Station, status: OrderStatus) -> Optional[Order]:
        """Bulk-move every item routed to ``station``."""
        station = Station(station)
        status = self._validate_item_status(status)
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            if order.status in TERMINAL_STATUSES:
                logger.warning(f"Ignoring {station.value} update on {order.status.value} order {order_id}")
                return order.model_copy(deep=True)

            updated = order.model_copy(deep=True)
            station_items = [i for i in updated.items if i.station == station]
            if not station_items:
                logger.debug(f"Order {order_id} has no {station.value} items")
                return order.model_copy(deep=True)

            self._transition_items(updated, station_items, status)
            self._recompute_stations(updated)
            updated.status = derive_global_status(updated.status, updated.kitchen_status, updated.bar_status)
            self._commit(updated)

        logger.info(f"Order {order_id} {station.value} -> {status.value}; order {updated.status.value}")
        return updated.model_copy(deep=True)

    def complete_order(self, order_id: str) -> Optional[Order]:
        """Finalize payment state: stations COMPLETED, items SERVED, table released.

        Items that were never marked served are deducted now when
        ``deduct_on_force_complete`` is on, so a later void restores exactly
        what was taken. Loyalty is left to the checkout flow.
        """
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            if order.status in TERMINAL_STATUSES:
                logger.debug(f"Order {order_id} already {order.status.value}")
                return order.model_copy(deep=True)

            updated = order.model_copy(deep=True)
            unserved = [i for i in updated.items if i.status != OrderStatus.SERVED]
            if self.settings.deduct_on_force_complete:
                self._transition_items(updated, unserved, OrderStatus.SERVED)
            else:
                for item in unserved:
                    item.status = OrderStatus.SERVED
            for station in Station:
                if updated.station_status(station) != OrderStatus.NONE:
                    self._set_station_field(updated, station, OrderStatus.COMPLETED)
            updated.status = OrderStatus.COMPLETED
            self._commit(updated)

        logger.info(f"Order {order_id} completed")
        self._release_table(updated.table_id, order_id)
        return updated.model_copy(deep=True)

    def void_order(self, order_id: str, reason: str) -> Optional[Order]:
        """Cancel an order, restoring served stock and reversing a completed sale's loyalty."""
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            if order.status == OrderStatus.CANCELLED:
                logger.debug(f"Order {order_id} already cancelled")
                return order.model_copy(deep=True)

            was_completed = order.status == OrderStatus.COMPLETED
            updated = order.model_copy(deep=True)
            self._transition_items(updated, updated.items, OrderStatus.CANCELLED)
            updated.status = OrderStatus.CANCELLED
            updated.kitchen_status = OrderStatus.CANCELLED
            updated.bar_status = OrderStatus.CANCELLED
            updated.void_reason = reason
            self._commit(updated)

        if was_completed and updated.loyalty_applied and self.loyalty is not None:
            self.loyalty.reverse_on_void(updated.customer_id, updated.points_earned, updated.points_redeemed)

        logger.info(f"Order {order_id} voided: {reason}")
        self._notify(Severity.WARNING, f"Order #{updated.short_id} VOIDED. Reason: {reason}")
        self._release_table(updated.table_id, order_id)
        return updated.model_copy(deep=True)

    def remove_order_item(self, order_id: str, item_index: int) -> OperationResult:
        """Drop one line. Removing the last line cancels the order."""
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return OperationResult.declined("Order not found")
            if order.status in TERMINAL_STATUSES:
                logger.warning(f"Cannot remove items from {order.status.value} order {order_id}")
                return OperationResult.declined(f"Order is already {order.status.value}")
            if not 0 <= item_index < len(order.items):
                logger.debug(f"Order {order_id} has no item {item_index}")
                return OperationResult.declined("Item not found")

            updated = order.model_copy(deep=True)
            item = updated.items[item_index]
            if item.status == OrderStatus.SERVED:
                self._transition_items(updated, [item], OrderStatus.CANCELLED)
            del updated.items[item_index]

            emptied = not updated.items
            if emptied:
                updated.status = OrderStatus.CANCELLED
                updated.kitchen_status = OrderStatus.CANCELLED
                updated.bar_status = OrderStatus.CANCELLED
                updated.total = Decimal("0")
                updated.discount = Decimal("0")
                updated.void_reason = ALL_ITEMS_REMOVED
            else:
                updated.total = self._total_for(updated)
                updated.discount = min(updated.discount, updated.total)
                self._recompute_stations(updated)
                updated.status = derive_global_status(updated.status, updated.kitchen_status, updated.bar_status)
            self._commit(updated)

        logger.info(f"Removed {item.name} from order {order_id}; {len(updated.items)} items left")
        self._notify(Severity.INFO, "Item removed from order")
        if emptied:
            self._release_table(updated.table_id, order_id)
        return OperationResult.ok("Item removed from order", data=updated.model_copy(deep=True))

    # ------------------------------------------------------------------
    # Order attributes
    # ------------------------------------------------------------------

    def set_discount(self, order_id: str, discount: Decimal) -> Optional[Order]:
        """Flat discount, clamped to ``[0, total]``."""
        discount = Decimal(str(discount))
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            updated = order.model_copy(deep=True)
            updated.discount = max(Decimal("0"), min(discount, updated.total))
            self._commit(updated)
        logger.info(f"Order {order_id} discount set to {updated.discount}")
        self._notify(Severity.INFO, "Discount updated")
        return updated.model_copy(deep=True)

    def record_payment(
        self,
        order_id: str,
        payment_method: PaymentMethod,
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        points_earned: Optional[int] = None,
        points_redeemed: Optional[int] = None,
        loyalty_applied: Optional[bool] = None,
    ) -> Optional[Order]:
        """Stamp settlement details on an order without changing its status.

        ``loyalty_applied`` marks the order whose void should reverse the
        customer's points and visit.
        """
        with self._locks.hold(order_id):
            order = self._lookup(order_id)
            if order is None:
                return None
            updated = order.model_copy(deep=True)
            updated.payment_method = PaymentMethod(payment_method)
            if customer_id is not None:
                updated.customer_id = customer_id
            if customer_name is not None:
                updated.customer_name = customer_name
            if points_earned is not None:
                updated.points_earned = points_earned
            if points_redeemed is not None:
                updated.points_redeemed = points_redeemed
            if loyalty_applied is not None:
                updated.loyalty_applied = loyalty_applied
            self._commit(updated)
        return updated.model_copy(deep=True)

    def reassign_table(self, from_table_id: str, to_table_id: str) -> List[str]:
        """Move every active order from one table to another. Returns the moved ids."""
        with self._store_lock:
            candidates = [o.id for o in self._orders.values() if o.table_id == from_table_id]
        moved = []
        for order_id in candidates:
            with self._locks.hold(order_id):
                order = self._lookup(order_id)
                if order is None or not order.is_active or order.table_id != from_table_id:
                    continue
                updated = order.model_copy(deep=True)
                updated.table_id = to_table_id
                self._commit(updated)
                moved.append(order_id)
        if moved:
            logger.info(f"Moved {len(moved)} orders from {from_table_id} to {to_table_id}")
        return moved

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, order_id: str) -> Optional[Order]:
        with self._store_lock:
            order = self._orders.get(order_id)
        if order is None:
            logger.debug(f"Order {order_id} not found")
        return order

    def _commit(self, order: Order) -> None:
        with self._store_lock:
            self._orders[order.id] = order

    def _validate_item_status(self, status: OrderStatus) -> OrderStatus:
        try:
            status = OrderStatus(status)
        except ValueError:
            raise InvalidStatusError(status, ITEM_STATUSES)
        if status not in ITEM_STATUSES:
            raise InvalidStatusError(status, ITEM_STATUSES)
        return status

    def _transition_items(self, order: Order, items: List[OrderItem], status: OrderStatus) -> None:
        """Set ``items`` to ``status``, applying ledger effects for SERVED changes.

        All-or-nothing: on failure the ledger changes made here are reversed
        and the exception propagates before the order is committed.
        """
        applied: List[InventoryLogEntry] = []
        try:
            for item in items:
                if item.status == status:
                    continue
                if status == OrderStatus.SERVED:
                    applied.extend(self.ledger.deduct(order.id, item))
                elif item.status == OrderStatus.SERVED:
                    applied.extend(self.ledger.restore(order.id, item))
                item.status = status
        except Exception:
            self.ledger.compensate(applied)
            raise

    def _deduct_items(self, order: Order, items: List[OrderItem]) -> None:
        applied: List[InventoryLogEntry] = []
        try:
            for item in items:
                applied.extend(self.ledger.deduct(order.id, item))
        except Exception:
            self.ledger.compensate(applied)
            raise

    def _recompute_stations(self, order: Order) -> None:
        for station in Station:
            statuses = [i.status for i in order.items if i.station == station]
            self._set_station_field(order, station, aggregate_station_status(statuses))

    @staticmethod
    def _set_station_field(order: Order, station: Station, status: OrderStatus) -> None:
        if station == Station.KITCHEN:
            order.kitchen_status = status
        else:
            order.bar_status = status

    def _total_for(self, order: Order) -> Decimal:
        return order.subtotal * self.settings.vat_multiplier

    def _release_table(self, table_id: str, order_id: str) -> None:
        if self._tables is None or self.settings.is_takeout(table_id):
            return
        self._tables.try_free_table(table_id, excluding_order_id=order_id)

    def _notify(self, severity: Severity, message: str) -> None:
        if self.sink is not None:
            self.sink.notify(severity, message)
