# Services module

from floorops.services.booking_service import BookingService
from floorops.services.floor_engine import FloorEngine
from floorops.services.inventory_ledger import InventoryLedger
from floorops.services.loyalty_service import LoyaltyEngine
from floorops.services.menu_catalog import MenuCatalog
from floorops.services.order_service import OrderLifecycleManager
from floorops.services.pricing_service import PricingService
from floorops.services.staff_service import StaffDirectory
from floorops.services.station_service import StationClassifier, resolve_station
from floorops.services.table_service import TableTopologyManager

__all__ = [
    "BookingService",
    "FloorEngine",
    "InventoryLedger",
    "LoyaltyEngine",
    "MenuCatalog",
    "OrderLifecycleManager",
    "PricingService",
    "StaffDirectory",
    "StationClassifier",
    "TableTopologyManager",
    "resolve_station",
]
