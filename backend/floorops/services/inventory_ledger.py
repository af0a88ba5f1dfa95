"""Inventory Ledger - deducts and restores stock as order items are served.

Flow for a serve event:
1. Resolve the menu item's recipe through the injected recipe resolver
2. Multiply each recipe line by the ordered quantity
3. Merge lines that hit the same inventory item into one change
4. For each inventory item, under that item's lock:
   - apply the change
   - append exactly one log entry whose resulting quantity matches
5. Raise a low-stock notification when the quantity crosses down to the
   item's threshold

Stock is never a hard gate: quantities may go negative and orders are never
rejected for insufficient stock. If applying a change fails part-way, the
changes already applied for that event are reversed before the error
propagates.
"""

import logging
import threading
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings, get_settings
from floorops.core.locks import KeyedLocks
from floorops.schemas.common import Severity, new_id
from floorops.schemas.inventory import (
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryLogEntry,
)
from floorops.schemas.menu import RecipeLine
from floorops.schemas.order import OrderItem

logger = logging.getLogger(__name__)

RecipeResolver = Callable[[str], List[RecipeLine]]

INITIAL_STOCK_REASON = "Initial Stock"
MANUAL_UPDATE_REASON = "Manual Update"


def _no_recipes(menu_id: str) -> List[RecipeLine]:
    return []


class InventoryLedger:
    """Quantity-tracked item store with an append-only journal per item."""

    def __init__(
        self,
        recipe_resolver: Optional[RecipeResolver] = None,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.recipe_resolver = recipe_resolver or _no_recipes
        self.sink = sink
        self._items: Dict[str, InventoryItem] = {}
        self._store_lock = threading.Lock()
        self._locks = KeyedLocks()

    # ===== ITEM MANAGEMENT =====

    def create_item(self, payload: InventoryItemCreate) -> InventoryItem:
        """Add an item and seed its journal with an "Initial Stock" entry."""
        item = InventoryItem(**payload.model_dump())
        item.logs.append(
            InventoryLogEntry(
                id=new_id("log"),
                item_id=item.id,
                change_amount=item.quantity,
                reason=INITIAL_STOCK_REASON,
                resulting_quantity=item.quantity,
            )
        )
        with self._store_lock:
            if item.id in self._items:
                raise ValueError(f"Inventory item {item.id} already exists")
            self._items[item.id] = item
        logger.info(f"Created inventory item {item.id} ({item.name}) with {item.quantity} {item.unit}")
        return item.model_copy(deep=True)

    def update_item(self, item_id: str, changes: InventoryItemUpdate) -> Optional[InventoryItem]:
        """Edit metadata. Never touches quantity or the journal."""
        item = self._lookup(item_id)
        if item is None:
            return None
        with self._locks.hold(item_id):
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(item, field, value)
            return item.model_copy(deep=True)

    def delete_item(self, item_id: str) -> bool:
        """Hard delete. The journal goes with the item."""
        with self._store_lock:
            removed = self._items.pop(item_id, None)
        if removed is None:
            logger.debug(f"Inventory item {item_id} not found")
            return False
        self._locks.discard(item_id)
        logger.info(f"Deleted inventory item {item_id} ({removed.name})")
        return True

    def get_item(self, item_id: str) -> Optional[InventoryItem]:
        item = self._lookup(item_id)
        if item is None:
            return None
        with self._locks.hold(item_id):
            return item.model_copy(deep=True)

    def list_items(self, category: Optional[str] = None) -> List[InventoryItem]:
        with self._store_lock:
            ids = list(self._items)
        items = [i for i in (self.get_item(item_id) for item_id in ids) if i is not None]
        if category is not None:
            items = [i for i in items if i.category == category]
        return items

    def low_stock_items(self) -> List[InventoryItem]:
        return [i for i in self.list_items() if i.is_low_stock]

    # ===== LEDGER OPERATIONS =====

    def deduct(self, order_id: str, item: OrderItem) -> List[InventoryLogEntry]:
        """Consume the recipe of a served order item. Returns the entries written."""
        reason = f"Order #{order_id[-4:]}: {item.name}"
        return self._apply_recipe(order_id, item, Decimal("-1"), reason)

    def restore(self, order_id: str, item: OrderItem) -> List[InventoryLogEntry]:
        """Put back the recipe of an order item that is no longer served."""
        reason = f"Restore Order #{order_id[-4:]}: {item.name}"
        return self._apply_recipe(order_id, item, Decimal("1"), reason)

    def adjust_manual(
        self,
        item_id: str,
        new_quantity: Decimal,
        reason: str = MANUAL_UPDATE_REASON,
    ) -> Optional[InventoryLogEntry]:
        """Set the on-hand quantity directly, journaling the delta.

        Returns the entry written, or None when the item is unknown or the
        quantity is already ``new_quantity``.
        """
        new_quantity = Decimal(str(new_quantity))
        item = self._lookup(item_id)
        if item is None:
            return None

        with self._locks.hold(item_id):
            delta = new_quantity - item.quantity
            if delta == 0:
                logger.debug(f"Manual update of {item_id} left quantity unchanged")
                return None
            entry, crossed = self._apply_locked(item, delta, reason, None)

        logger.info(f"Manual adjustment {item.name}: {delta:+} -> {entry.resulting_quantity}")
        if crossed:
            self._notify_low_stock(item.name, entry.resulting_quantity, item.unit)
        return entry

    def compensate(self, entries: Sequence[InventoryLogEntry]) -> None:
        """Reverse applied entries, newest first.

        Reversals are journaled like any other change; the log stays append-only.
        """
        for entry in reversed(list(entries)):
            item_id = entry.item_id
            item = self._lookup(item_id)
            if item is None:
                continue
            with self._locks.hold(item_id):
                self._apply_locked(item, -entry.change_amount, f"Rollback: {entry.reason}", entry.order_id)
            logger.warning(f"Rolled back {entry.change_amount} on {item_id} ({entry.reason})")

    # ===== INTERNALS =====

    def _lookup(self, item_id: str) -> Optional[InventoryItem]:
        with self._store_lock:
            item = self._items.get(item_id)
        if item is None:
            logger.debug(f"Inventory item {item_id} not found")
        return item

    def _consumption(self, item: OrderItem) -> "OrderedDict[str, Decimal]":
        """Total quantity per inventory item for one order line, in recipe order."""
        amounts: "OrderedDict[str, Decimal]" = OrderedDict()
        for line in self.recipe_resolver(item.menu_id):
            amount = line.quantity_per_unit * item.quantity
            amounts[line.inventory_item_id] = amounts.get(line.inventory_item_id, Decimal("0")) + amount
        return amounts

    def _apply_recipe(
        self,
        order_id: str,
        order_item: OrderItem,
        sign: Decimal,
        reason: str,
    ) -> List[InventoryLogEntry]:
        applied: List[InventoryLogEntry] = []
        low_stock: List[Tuple[str, Decimal, str]] = []

        try:
            for item_id, amount in self._consumption(order_item).items():
                if amount == 0:
                    continue
                item = self._lookup(item_id)
                if item is None:
                    continue
                with self._locks.hold(item_id):
                    entry, crossed = self._apply_locked(item, sign * amount, reason, order_id)
                applied.append(entry)
                if crossed:
                    low_stock.append((item.name, entry.resulting_quantity, item.unit))
        except Exception as e:
            logger.error(f"Ledger update failed for order {order_id}: {e}", exc_info=True)
            self.compensate(applied)
            raise

        if applied:
            logger.info(f"{reason}: {len(applied)} inventory items updated")
        for name, quantity, unit in low_stock:
            self._notify_low_stock(name, quantity, unit)
        return applied

    def _apply_locked(
        self,
        item: InventoryItem,
        delta: Decimal,
        reason: str,
        order_id: Optional[str],
    ) -> Tuple[InventoryLogEntry, bool]:
        """Apply one change. Caller holds the item's lock.

        Returns the entry and whether the change crossed down to the low-stock
        threshold.
        """
        old_quantity = item.quantity
        new_quantity = old_quantity + delta
        entry = InventoryLogEntry(
            id=new_id("log"),
            item_id=item.id,
            change_amount=delta,
            reason=reason,
            resulting_quantity=new_quantity,
            order_id=order_id,
        )
        item.quantity = new_quantity
        item.logs.append(entry)
        assert item.logs[-1].resulting_quantity == item.quantity, "journal out of step with quantity"

        crossed = delta < 0 and old_quantity > item.min_quantity >= new_quantity
        return entry, crossed

    def _notify_low_stock(self, name: str, quantity: Decimal, unit: str) -> None:
        if self.sink is None or not self.settings.in_app_notifications:
            logger.warning(f"Low stock: {name} at {quantity} {unit}")
            return
        self.sink.notify(Severity.WARNING, f"Low Stock Alert: {name} is down to {quantity} {unit}.")
