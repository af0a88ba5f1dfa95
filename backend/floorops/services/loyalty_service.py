"""Loyalty engine - customer balances, tiers and coupon redemption.

Customer points are only mutated here. Every mutation recomputes the tier
from the new balance.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings, get_settings
from floorops.core.locks import KeyedLocks
from floorops.schemas.common import OperationResult, Severity
from floorops.schemas.customer import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    Customer,
    CustomerCreate,
    CustomerTier,
    CustomerUpdate,
)
from floorops.services.status_reducers import calculate_tier

logger = logging.getLogger(__name__)


class LoyaltyEngine:
    """Customers and coupons, with per-customer serialization of point changes."""

    def __init__(self, sink: Optional[NotificationSink] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.sink = sink
        self._customers: Dict[str, Customer] = {}
        self._coupons: Dict[str, Coupon] = {}
        self._store_lock = threading.RLock()
        self._locks = KeyedLocks(reentrant=True)

    def tier_for(self, points: int) -> CustomerTier:
        return calculate_tier(points, self.settings.silver_tier_points, self.settings.gold_tier_points)

    @contextmanager
    def locked(self, customer_id: str):
        """Hold a customer's lock across several loyalty calls."""
        with self._locks.hold(customer_id):
            yield

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def add_customer(self, payload: CustomerCreate) -> Customer:
        customer = Customer(**payload.model_dump(), tier=self.tier_for(payload.points))
        with self._store_lock:
            if customer.id in self._customers:
                raise ValueError(f"Customer {customer.id} already exists")
            self._customers[customer.id] = customer
        logger.info(f"Added customer {customer.id} ({customer.name}), tier {customer.tier.value}")
        return customer.model_copy(deep=True)

    def update_customer(self, customer_id: str, changes: CustomerUpdate) -> Optional[Customer]:
        customer = self._lookup(customer_id)
        if customer is None:
            return None
        with self._locks.hold(customer_id):
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(customer, field, value)
            return customer.model_copy(deep=True)

    def delete_customer(self, customer_id: str) -> bool:
        with self._store_lock:
            removed = self._customers.pop(customer_id, None)
        if removed is None:
            logger.debug(f"Customer {customer_id} not found")
            return False
        logger.info(f"Deleted customer {customer_id}")
        return True

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        customer = self._lookup(customer_id)
        if customer is None:
            return None
        with self._locks.hold(customer_id):
            return customer.model_copy(deep=True)

    def list_customers(self) -> List[Customer]:
        with self._store_lock:
            customers = list(self._customers.values())
        return [c.model_copy(deep=True) for c in customers]

    def find_by_phone(self, phone: str) -> Optional[Customer]:
        phone = phone.strip()
        with self._store_lock:
            for customer in self._customers.values():
                if customer.phone == phone:
                    return customer.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def award_and_record(
        self,
        customer_id: str,
        points_earned: int,
        points_redeemed: int = 0,
        increment_visit: bool = False,
    ) -> Optional[Customer]:
        """Apply a sale's loyalty effect: ``max(0, points + earned - redeemed)``."""
        customer = self._lookup(customer_id)
        if customer is None:
            return None
        with self._locks.hold(customer_id):
            old_tier = customer.tier
            self._set_points(customer, customer.points + points_earned - points_redeemed)
            if increment_visit:
                customer.visit_count += 1
            snapshot = customer.model_copy(deep=True)

        logger.info(
            f"Customer {customer_id}: +{points_earned} -{points_redeemed} points -> {snapshot.points} "
            f"({snapshot.tier.value}), visits {snapshot.visit_count}"
        )
        if snapshot.tier != old_tier:
            logger.info(f"Customer {customer_id} tier changed {old_tier.value} -> {snapshot.tier.value}")
        return snapshot

    def reverse_on_void(self, customer_id: str, points_earned: int, points_redeemed: int) -> Optional[Customer]:
        """Undo a completed sale: take back earned points, return redeemed ones, drop a visit."""
        customer = self._lookup(customer_id)
        if customer is None:
            return None
        with self._locks.hold(customer_id):
            self._set_points(customer, customer.points - points_earned + points_redeemed)
            customer.visit_count = max(0, customer.visit_count - 1)
            snapshot = customer.model_copy(deep=True)
        logger.info(
            f"Customer {customer_id}: reversed -{points_earned} +{points_redeemed} points -> {snapshot.points}"
        )
        return snapshot

    def update_loyalty(self, customer_id: str, points_delta: int, increment_visit: bool = False) -> Optional[Customer]:
        """Manual award (positive) or deduction (negative)."""
        return self.award_and_record(
            customer_id,
            points_earned=max(points_delta, 0),
            points_redeemed=max(-points_delta, 0),
            increment_visit=increment_visit,
        )

    def _set_points(self, customer: Customer, points: int) -> None:
        customer.points = max(0, points)
        customer.tier = self.tier_for(customer.points)

    def _lookup(self, customer_id: str) -> Optional[Customer]:
        with self._store_lock:
            customer = self._customers.get(customer_id)
        if customer is None:
            logger.debug(f"Customer {customer_id} not found")
        return customer

    # ------------------------------------------------------------------
    # Coupons
    # ------------------------------------------------------------------

    def add_coupon(self, payload: CouponCreate) -> OperationResult:
        with self._store_lock:
            if any(c.code == payload.code for c in self._coupons.values()):
                logger.warning(f"Coupon code {payload.code} already exists")
                return OperationResult.declined(f"Coupon code {payload.code} already exists")
            if payload.id in self._coupons:
                return OperationResult.declined(f"Coupon {payload.id} already exists")
            coupon = Coupon(**payload.model_dump())
            self._coupons[coupon.id] = coupon
        logger.info(f"Added coupon {coupon.code} ({coupon.type.value} {coupon.value})")
        return OperationResult.ok("Coupon added", data=coupon.model_copy())

    def update_coupon(self, coupon_id: str, changes: CouponUpdate) -> Optional[Coupon]:
        with self._store_lock:
            coupon = self._coupons.get(coupon_id)
            if coupon is None:
                logger.debug(f"Coupon {coupon_id} not found")
                return None
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(coupon, field, value)
            return coupon.model_copy()

    def delete_coupon(self, coupon_id: str) -> bool:
        with self._store_lock:
            return self._coupons.pop(coupon_id, None) is not None

    def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        with self._store_lock:
            coupon = self._coupons.get(coupon_id)
            return coupon.model_copy() if coupon else None

    def list_coupons(self, active_only: bool = False) -> List[Coupon]:
        with self._store_lock:
            coupons = [c.model_copy() for c in self._coupons.values()]
        if active_only:
            coupons = [c for c in coupons if c.is_active]
        return coupons

    def find_coupon(self, code: str) -> Optional[Coupon]:
        """Case-insensitive lookup of an active coupon."""
        code = code.strip().upper()
        with self._store_lock:
            for coupon in self._coupons.values():
                if coupon.code == code and coupon.is_active:
                    return coupon.model_copy()
        return None

    def redeem_coupon(self, customer_id: str, coupon_id: str) -> OperationResult:
        """Spend points on a coupon and add it to the customer's wallet.

        Declined, with nothing changed, when the customer cannot afford it.
        Does not discount any order by itself.
        """
        coupon = self.get_coupon(coupon_id)
        if coupon is None or not coupon.is_active:
            logger.debug(f"Coupon {coupon_id} not found or inactive")
            return OperationResult.declined("Coupon not available")

        customer = self._lookup(customer_id)
        if customer is None:
            return OperationResult.declined("Customer not found")

        with self._locks.hold(customer_id):
            balance = customer.points
            affordable = balance >= coupon.point_cost
            if affordable:
                self._set_points(customer, balance - coupon.point_cost)
                customer.owned_coupons.append(coupon.code)
                snapshot = customer.model_copy(deep=True)

        if not affordable:
            logger.warning(f"Customer {customer_id} has {balance} points, {coupon.code} costs {coupon.point_cost}")
            message = f"Not enough points to redeem {coupon.code}"
            self._notify(Severity.ERROR, message)
            return OperationResult.declined(message)

        logger.info(f"Customer {customer_id} redeemed {coupon.code} for {coupon.point_cost} points")
        self._notify(Severity.SUCCESS, f"Redeemed {coupon.code} for {coupon.point_cost} points")
        return OperationResult.ok(f"Redeemed {coupon.code}", data=snapshot)

    def _notify(self, severity: Severity, message: str) -> None:
        if self.sink is not None:
            self.sink.notify(severity, message)
