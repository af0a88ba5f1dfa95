"""Menu catalog schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from floorops.schemas.common import Station, new_id


class Category(BaseModel):
    """Menu category."""

    id: str = Field(default_factory=lambda: new_id("cat"))
    name: str = Field(..., min_length=1, max_length=100)


class RecipeLine(BaseModel):
    """Inventory consumed per sold unit of a menu item."""

    inventory_item_id: str
    quantity_per_unit: Decimal = Field(..., gt=0)


class MenuItem(BaseModel):
    """Sellable menu item.

    ``station`` overrides the category routing when set. The recipe is an
    ordered list; a menu item without one never touches inventory.
    """

    id: str = Field(default_factory=lambda: new_id("m"))
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0)
    category_id: str
    station: Optional[Station] = None
    recipe: List[RecipeLine] = []
    description: Optional[str] = None
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    """Partial menu item update. Only fields explicitly set are applied."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[Decimal] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    station: Optional[Station] = None
    recipe: Optional[List[RecipeLine]] = None
    description: Optional[str] = None
    is_available: Optional[bool] = None
