"""Inventory schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from floorops.schemas.common import new_id, utcnow


class InventoryLogEntry(BaseModel):
    """Immutable journal line written for every quantity mutation."""

    id: str
    item_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    change_amount: Decimal
    reason: str
    resulting_quantity: Decimal
    order_id: Optional[str] = None

    model_config = {"frozen": True}


class InventoryItem(BaseModel):
    """Quantity-tracked stock item. Quantity is signed and may go negative."""

    id: str
    name: str
    unit: str
    quantity: Decimal = Decimal("0")
    min_quantity: Decimal = Decimal("0")
    cost_per_unit: Decimal = Decimal("0")
    category: str = "General"
    logs: List[InventoryLogEntry] = []

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity


class InventoryItemCreate(BaseModel):
    """Inventory item creation schema."""

    id: str = Field(default_factory=lambda: new_id("inv"))
    name: str = Field(..., min_length=1, max_length=200)
    unit: str = Field(..., min_length=1, max_length=20)
    quantity: Decimal = Decimal("0")
    min_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    cost_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    category: str = "General"


class InventoryItemUpdate(BaseModel):
    """Metadata edits. Quantity changes go through a manual adjustment."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=20)
    min_quantity: Optional[Decimal] = Field(default=None, ge=0)
    cost_per_unit: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
