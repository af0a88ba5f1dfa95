"""Station routing: which preparation display an item belongs to."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from floorops.core.config import Settings, get_settings
from floorops.schemas.common import Station
from floorops.schemas.menu import MenuItem

logger = logging.getLogger(__name__)


def resolve_station(
    menu_item: Optional[MenuItem],
    category_mapping: Mapping[str, Station],
    default: Station = Station.KITCHEN,
) -> Station:
    """Resolve the station for a menu item.

    Precedence: explicit item override, then the category mapping, then the
    default. Unknown items (deleted from the catalog) go to the default.
    """
    if menu_item is None:
        return Station(default)
    if menu_item.station:
        return Station(menu_item.station)
    mapped = category_mapping.get(menu_item.category_id)
    if mapped:
        return Station(mapped)
    return Station(default)


class StationClassifier:
    """Routes menu ids to stations using the live catalog."""

    def __init__(self, catalog, settings: Optional[Settings] = None):
        self.catalog = catalog
        self.settings = settings or get_settings()

    def station_for(self, menu_id: str) -> Station:
        menu_item = self.catalog.get_item(menu_id)
        if menu_item is None:
            logger.debug(f"Menu item {menu_id} not in catalog, routing to {self.settings.default_station}")
        return resolve_station(
            menu_item,
            self.catalog.category_mapping(),
            Station(self.settings.default_station),
        )

    def partition(self, menu_ids: Iterable[str]) -> Dict[Station, List[int]]:
        """Group positions of ``menu_ids`` by station."""
        buckets: Dict[Station, List[int]] = {Station.KITCHEN: [], Station.BAR: []}
        for index, menu_id in enumerate(menu_ids):
            buckets[self.station_for(menu_id)].append(index)
        return buckets
