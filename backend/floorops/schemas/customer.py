"""Customer, coupon and pricing schemas."""

import enum
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from floorops.schemas.common import new_id


class CustomerTier(str, enum.Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class DiscountType(str, enum.Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


class Customer(BaseModel):
    """Loyalty member. Points and tier change only through the loyalty engine."""

    id: str
    name: str
    phone: str
    points: int = Field(default=0, ge=0)
    tier: CustomerTier = CustomerTier.BRONZE
    visit_count: int = Field(default=0, ge=0)
    owned_coupons: List[str] = []


class CustomerCreate(BaseModel):
    """Customer creation schema."""

    id: str = Field(default_factory=lambda: new_id("c"))
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=30)
    points: int = Field(default=0, ge=0)
    visit_count: int = Field(default=0, ge=0)


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, min_length=3, max_length=30)


class DiscountSpec(BaseModel):
    """A discount expressed either as a percentage or a fixed amount."""

    type: DiscountType
    value: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_percent(self):
        if self.type == DiscountType.PERCENT and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class Coupon(BaseModel):
    """Promotion coupon.

    ``point_cost`` of 0 means the coupon can be applied freely; anything
    above must be redeemed against a customer's balance first.
    """

    id: str
    code: str
    type: DiscountType
    value: Decimal
    point_cost: int = 0
    is_active: bool = True
    description: Optional[str] = None


class CouponCreate(BaseModel):
    """Coupon creation schema. Codes are stored upper-case."""

    id: str = Field(default_factory=lambda: new_id("cp"))
    code: str = Field(..., min_length=1, max_length=50)
    type: DiscountType
    value: Decimal = Field(..., ge=0)
    point_cost: int = Field(default=0, ge=0)
    is_active: bool = True
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Coupon code cannot be blank")
        return v

    @model_validator(mode="after")
    def validate_percent(self):
        if self.type == DiscountType.PERCENT and self.value > 100:
            raise ValueError("Percentage coupon cannot exceed 100")
        return self


class CouponUpdate(BaseModel):
    value: Optional[Decimal] = Field(default=None, ge=0)
    point_cost: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    description: Optional[str] = None


class PriceQuote(BaseModel):
    """Pricing breakdown for a settlement.

    ``discount_total`` is the flat discount plus the coupon discount.
    """

    subtotal: Decimal
    flat_discount: Decimal = Decimal("0")
    coupon_discount: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    final_total: Decimal
    coupon_code: Optional[str] = None
