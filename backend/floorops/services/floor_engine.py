"""Floor engine - owns one instance of every component and wires them together.

Terminals (POS, kitchen and bar displays, self-order kiosk) talk to this
facade. Simple operations are reached through the component attributes
(``engine.orders``, ``engine.tables``...); flows that touch several
components at once live here.

Lock order for composite flows: table topology, then customer, then order,
then inventory item.
"""

import logging
from contextlib import nullcontext
from decimal import Decimal
from typing import List, Optional

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings, get_settings
from floorops.core.rbac import Permission, PermissionGate, require
from floorops.schemas.common import OperationResult, OrderStatus, PaymentMethod, Severity
from floorops.schemas.inventory import InventoryLogEntry
from floorops.schemas.order import CheckoutResult, Order, OrderCreate, OrderItemCreate
from floorops.services.booking_service import BookingService
from floorops.services.inventory_ledger import InventoryLedger
from floorops.services.loyalty_service import LoyaltyEngine
from floorops.services.menu_catalog import MenuCatalog
from floorops.services.order_service import OrderLifecycleManager
from floorops.services.pricing_service import Discount, PricingService
from floorops.services.staff_service import StaffDirectory
from floorops.services.station_service import StationClassifier
from floorops.services.table_service import TableTopologyManager

logger = logging.getLogger(__name__)


class FloorEngine:
    """Composition root for the floor-operations core."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sink: Optional[NotificationSink] = None,
        gate: Optional[PermissionGate] = None,
    ):
        self.settings = settings or get_settings()
        self.sink = sink or NotificationSink(max_buffer=self.settings.notification_buffer_size)

        self.catalog = MenuCatalog(self.settings)
        self.ledger = InventoryLedger(self.catalog.recipe_for, self.sink, self.settings)
        self.classifier = StationClassifier(self.catalog, self.settings)
        self.loyalty = LoyaltyEngine(self.sink, self.settings)
        self.pricing = PricingService(self.settings)
        self.orders = OrderLifecycleManager(
            self.catalog,
            self.ledger,
            classifier=self.classifier,
            loyalty=self.loyalty,
            sink=self.sink,
            settings=self.settings,
        )
        self.tables = TableTopologyManager(self.orders, self.sink, self.settings)
        self.orders.bind_tables(self.tables)
        self.bookings = BookingService(self.tables, self.sink)
        self.staff = StaffDirectory()
        self.gate = gate or self.staff

        logger.info("Floor engine initialized")

    def _authorize(self, actor_id: Optional[str], permission: Permission) -> None:
        if actor_id is not None:
            require(self.gate, actor_id, permission)

    # ------------------------------------------------------------------
    # Gated entry points
    # ------------------------------------------------------------------

    def create_order(self, payload: OrderCreate, actor_id: Optional[str] = None) -> Order:
        self._authorize(actor_id, Permission.ACCESS_POS)
        return self.orders.create_order(payload)

    def void_order(self, order_id: str, reason: str, actor_id: Optional[str] = None) -> Optional[Order]:
        """Void an order. Stock and a completed sale's loyalty effect are reversed."""
        self._authorize(actor_id, Permission.ACCESS_POS)
        return self.orders.void_order(order_id, reason)

    def merge_tables(self, master_id: str, slave_id: str, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id, Permission.ACCESS_POS)
        result = self.tables.merge(master_id, slave_id)
        if not result:
            self.sink.notify(Severity.ERROR, result.message)
        return result

    def transfer_table(self, from_id: str, to_id: str, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id, Permission.ACCESS_POS)
        result = self.tables.transfer(from_id, to_id)
        self.sink.notify(Severity.SUCCESS if result else Severity.ERROR, result.message)
        return result

    def adjust_stock(
        self,
        item_id: str,
        new_quantity: Decimal,
        reason: str = "Manual Update",
        actor_id: Optional[str] = None,
    ) -> Optional[InventoryLogEntry]:
        self._authorize(actor_id, Permission.MANAGE_INVENTORY)
        return self.ledger.adjust_manual(item_id, new_quantity, reason)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def checkout(
        self,
        table_id: Optional[str] = None,
        order_ids: Optional[List[str]] = None,
        customer_id: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        discount: Discount = None,
        coupon_code: Optional[str] = None,
        extra_items: Optional[List[OrderItemCreate]] = None,
        actor_id: Optional[str] = None,
    ) -> OperationResult:
        """Settle a table (or explicit orders) in one step.

        1. Validate the customer and coupon; nothing changes if either fails
        2. Quote the bill: open order totals minus their discounts, plus any
           extra cart items, minus the flat discount and the coupon
        3. Complete the open orders (or record a completed order for the
           extra items) and award points plus one visit to the customer
        4. Redeem a point-cost coupon against the customer's balance
        5. Stamp payment details on every settled order

        Earned and redeemed points are recorded on one settlement order, so
        voiding that order reverses the loyalty effect exactly once.
        """
        self._authorize(actor_id, Permission.ACCESS_POS)
        payment_method = PaymentMethod(payment_method)
        extra_items = list(extra_items or [])

        with self.tables.locked():
            if order_ids is not None:
                open_orders = [o for o in (self.orders.get_order(i) for i in order_ids) if o and o.is_active]
                if table_id is None and open_orders:
                    table_id = open_orders[0].table_id
            elif table_id is not None:
                open_orders = self.orders.active_orders_for_table(table_id)
            else:
                open_orders = []

            if not open_orders and not extra_items:
                logger.warning(f"Checkout declined for {table_id}: nothing to settle")
                return OperationResult.declined("Nothing to settle")

            customer = None
            if customer_id is not None:
                customer = self.loyalty.get_customer(customer_id)
                if customer is None:
                    return OperationResult.declined("Customer not found")

            coupon = None
            if coupon_code:
                coupon = self.loyalty.find_coupon(coupon_code)
                if coupon is None:
                    self.sink.notify(Severity.ERROR, "Invalid Coupon")
                    return OperationResult.declined("Invalid Coupon")
                if coupon.point_cost > 0 and customer is None:
                    return OperationResult.declined(f"Coupon {coupon.code} must be redeemed by a customer")

            extra_total = self._extra_items_total(extra_items)
            subtotal = sum((o.amount_due for o in open_orders), Decimal("0")) + extra_total
            quote = self.pricing.quote(subtotal, discount, coupon)
            points_earned = self.pricing.points_for(quote.final_total) if customer else 0
            points_redeemed = coupon.point_cost if coupon else 0

            customer_guard = self.loyalty.locked(customer_id) if customer else nullcontext()
            with customer_guard:
                if points_redeemed:
                    balance = self.loyalty.get_customer(customer_id).points
                    if balance + points_earned < points_redeemed:
                        logger.warning(
                            f"Checkout declined: customer {customer_id} has {balance} points, "
                            f"{coupon.code} costs {points_redeemed}"
                        )
                        message = f"Not enough points to redeem {coupon.code}"
                        self.sink.notify(Severity.ERROR, message)
                        return OperationResult.declined(message)

                settled = [self.orders.complete_order(o.id) for o in open_orders]
                settled_ids = [o.id for o in settled if o is not None]

                if extra_items:
                    settlement = self.orders.create_order(
                        OrderCreate(
                            table_id=table_id or self.settings.takeout_table_id,
                            items=extra_items,
                            status=OrderStatus.COMPLETED,
                            total=extra_total,
                            customer_id=customer_id,
                            customer_name=customer.name if customer else None,
                            payment_method=payment_method,
                            points_earned=points_earned,
                        )
                    )
                    settled_ids.append(settlement.id)
                    settlement_id = settlement.id
                else:
                    settlement_id = settled_ids[0] if settled_ids else None
                    if customer:
                        self.loyalty.award_and_record(customer_id, points_earned, 0, increment_visit=True)

                if coupon is not None:
                    if points_redeemed:
                        redeemed = self.loyalty.redeem_coupon(customer_id, coupon.id)
                        assert redeemed.success, "affordability checked under the customer lock"
                    self.sink.notify(Severity.SUCCESS, "Coupon Applied!")

            for order_id in settled_ids:
                if order_id == settlement_id and customer:
                    self.orders.record_payment(
                        order_id,
                        payment_method,
                        customer_id=customer_id,
                        customer_name=customer.name,
                        points_earned=points_earned,
                        points_redeemed=points_redeemed,
                        loyalty_applied=True,
                    )
                else:
                    self.orders.record_payment(order_id, payment_method)

        result = CheckoutResult(
            table_id=table_id,
            order_ids=settled_ids,
            settlement_order_id=settlement_id,
            customer_id=customer_id,
            payment_method=payment_method,
            quote=quote,
            points_earned=points_earned,
            points_redeemed=points_redeemed,
            coupon_code=coupon.code if coupon else None,
        )
        logger.info(
            f"Checkout {table_id}: {len(settled_ids)} orders, charged {quote.final_total} "
            f"via {payment_method.value}, +{points_earned} points"
        )
        self.sink.notify(Severity.SUCCESS, self._payment_message(table_id, points_earned))
        return OperationResult.ok("Payment Successful", data=result)

    def _extra_items_total(self, items: List[OrderItemCreate]) -> Decimal:
        subtotal = Decimal("0")
        for line in items:
            price = line.price
            if price is None:
                menu_item = self.catalog.get_item(line.menu_id)
                price = menu_item.price if menu_item else Decimal("0")
            subtotal += price * line.quantity
        return subtotal * self.settings.vat_multiplier

    def _payment_message(self, table_id: Optional[str], points_earned: int) -> str:
        table = self.tables.get_table(table_id) if table_id else None
        if table is None:
            return f"Payment Successful. Points Earned: {points_earned}"
        return f"Payment Successful. Table {table.name} cleared. Points Earned: {points_earned}"
