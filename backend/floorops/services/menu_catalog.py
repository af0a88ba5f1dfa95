"""In-memory menu catalog.

Owns categories, menu items with their recipes, and the category -> station
mapping. The order and inventory components only read from it.
"""

import logging
import threading
from typing import Dict, List, Optional

from floorops.core.config import Settings, get_settings
from floorops.schemas.common import OperationResult, Station
from floorops.schemas.menu import Category, MenuItem, MenuItemUpdate, RecipeLine

logger = logging.getLogger(__name__)


class MenuCatalog:
    """Menu catalog backed by dictionaries."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._categories: Dict[str, Category] = {}
        self._items: Dict[str, MenuItem] = {}
        self._category_stations: Dict[str, Station] = {
            category_id: Station(station)
            for category_id, station in self.settings.category_station_mapping.items()
        }
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def add_category(self, category: Category) -> OperationResult:
        with self._lock:
            if category.id in self._categories:
                logger.warning(f"Category {category.id} already exists")
                return OperationResult.declined(f"Category {category.id} already exists")
            self._categories[category.id] = category.model_copy(deep=True)
        logger.info(f"Added category {category.id} ({category.name})")
        return OperationResult.ok("Category added", data=category.model_copy(deep=True))

    def update_category(self, category_id: str, name: str) -> Optional[Category]:
        with self._lock:
            category = self._categories.get(category_id)
            if category is None:
                logger.debug(f"Category {category_id} not found")
                return None
            category.name = name
            return category.model_copy(deep=True)

    def delete_category(self, category_id: str) -> OperationResult:
        with self._lock:
            if category_id not in self._categories:
                logger.debug(f"Category {category_id} not found")
                return OperationResult.declined("Category not found")
            in_use = [m.id for m in self._items.values() if m.category_id == category_id]
            if in_use:
                logger.warning(f"Refusing to delete category {category_id}: used by {len(in_use)} menu items")
                return OperationResult.declined(
                    f"Cannot delete category: {len(in_use)} menu items still use it"
                )
            del self._categories[category_id]
            self._category_stations.pop(category_id, None)
        logger.info(f"Deleted category {category_id}")
        return OperationResult.ok("Category deleted")

    def get_category(self, category_id: str) -> Optional[Category]:
        with self._lock:
            category = self._categories.get(category_id)
            return category.model_copy(deep=True) if category else None

    def list_categories(self) -> List[Category]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._categories.values()]

    # ------------------------------------------------------------------
    # Station mapping
    # ------------------------------------------------------------------

    def category_station(self, category_id: str) -> Optional[Station]:
        with self._lock:
            return self._category_stations.get(category_id)

    def set_category_station(self, category_id: str, station: Optional[Station]) -> None:
        """Route a category to a station, or drop the mapping with ``None``."""
        with self._lock:
            if station is None:
                self._category_stations.pop(category_id, None)
            else:
                self._category_stations[category_id] = Station(station)
        logger.info(f"Category {category_id} routed to {station.value if station else 'default station'}")

    def category_mapping(self) -> Dict[str, Station]:
        with self._lock:
            return dict(self._category_stations)

    # ------------------------------------------------------------------
    # Menu items
    # ------------------------------------------------------------------

    def add_item(self, item: MenuItem) -> MenuItem:
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"Menu item {item.id} already exists")
            self._items[item.id] = item.model_copy(deep=True)
        logger.info(f"Added menu item {item.id} ({item.name})")
        return item.model_copy(deep=True)

    def update_item(self, menu_id: str, changes: MenuItemUpdate) -> Optional[MenuItem]:
        with self._lock:
            item = self._items.get(menu_id)
            if item is None:
                logger.debug(f"Menu item {menu_id} not found")
                return None
            data = item.model_dump()
            data.update(changes.model_dump(exclude_unset=True))
            self._items[menu_id] = MenuItem.model_validate(data)
            return self._items[menu_id].model_copy(deep=True)

    def delete_item(self, menu_id: str) -> bool:
        with self._lock:
            removed = self._items.pop(menu_id, None)
        if removed is None:
            logger.debug(f"Menu item {menu_id} not found")
            return False
        logger.info(f"Deleted menu item {menu_id}")
        return True

    def get_item(self, menu_id: str) -> Optional[MenuItem]:
        with self._lock:
            item = self._items.get(menu_id)
            return item.model_copy(deep=True) if item else None

    def list_items(self, category_id: Optional[str] = None, available_only: bool = False) -> List[MenuItem]:
        with self._lock:
            items = list(self._items.values())
        if category_id is not None:
            items = [m for m in items if m.category_id == category_id]
        if available_only:
            items = [m for m in items if m.is_available]
        return [m.model_copy(deep=True) for m in items]

    def recipe_for(self, menu_id: str) -> List[RecipeLine]:
        """Recipe resolver used by the inventory ledger."""
        with self._lock:
            item = self._items.get(menu_id)
            if item is None:
                return []
            return [line.model_copy() for line in item.recipe]
