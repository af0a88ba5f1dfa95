"""Checkout pricing: discount and coupon stacking, loyalty point accrual."""

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Union

from floorops.core.config import Settings, get_settings
from floorops.schemas.customer import Coupon, DiscountSpec, DiscountType, PriceQuote

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

Discount = Union[Decimal, int, DiscountSpec, None]


class PricingService:
    """Pure pricing calculations. Holds no state besides settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def resolve_discount(self, subtotal: Decimal, discount: Discount) -> Decimal:
        """Turn a flat discount into an amount against the current subtotal.

        Percentages are recomputed from ``subtotal`` every time; fixed amounts
        are clamped to ``[0, subtotal]`` so a shrinking cart never carries a
        discount larger than itself.
        """
        if discount is None:
            return ZERO
        if isinstance(discount, DiscountSpec):
            if discount.type == DiscountType.PERCENT:
                return subtotal * discount.value / 100
            amount = discount.value
        else:
            amount = Decimal(str(discount))
        return max(ZERO, min(amount, subtotal))

    def coupon_discount(self, subtotal: Decimal, coupon: Optional[Coupon]) -> Decimal:
        if coupon is None:
            return ZERO
        if coupon.type == DiscountType.PERCENT:
            return subtotal * coupon.value / 100
        return coupon.value

    def quote(self, subtotal: Decimal, discount: Discount = None, coupon: Optional[Coupon] = None) -> PriceQuote:
        """Stack the flat discount and the coupon. The charge never goes below zero."""
        subtotal = Decimal(str(subtotal))
        flat = self.resolve_discount(subtotal, discount)
        coupon_amount = self.coupon_discount(subtotal, coupon)
        discount_total = flat + coupon_amount
        final_total = max(ZERO, subtotal - discount_total)
        logger.debug(
            f"Quote: subtotal {subtotal}, flat {flat}, coupon {coupon_amount}, final {final_total}"
        )
        return PriceQuote(
            subtotal=subtotal,
            flat_discount=flat,
            coupon_discount=coupon_amount,
            discount_total=discount_total,
            final_total=final_total,
            coupon_code=coupon.code if coupon else None,
        )

    def points_for(self, amount: Decimal) -> int:
        """Points earned for a charged amount: one per ``loyalty_spend_rate`` spent."""
        if not self.settings.loyalty_enabled:
            return 0
        amount = Decimal(str(amount))
        if amount <= 0:
            return 0
        return int((amount / self.settings.loyalty_spend_rate).to_integral_value(rounding=ROUND_FLOOR))
