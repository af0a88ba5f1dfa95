"""Capability checks consulted before privileged mutations."""

import enum
from abc import ABC, abstractmethod
from typing import Optional

from floorops.core.exceptions import PermissionDeniedError


class Permission(str, enum.Enum):
    """Capabilities a role can grant."""

    VIEW_DASHBOARD = "view_dashboard"
    ACCESS_POS = "access_pos"
    VIEW_ORDERS = "view_orders"
    VIEW_BAR = "view_bar"
    MANAGE_TABLES = "manage_tables"
    MANAGE_MENU = "manage_menu"
    MANAGE_INVENTORY = "manage_inventory"
    MANAGE_PROMOTIONS = "manage_promotions"
    MANAGE_BOOKINGS = "manage_bookings"
    MANAGE_CUSTOMERS = "manage_customers"
    MANAGE_EMPLOYEES = "manage_employees"
    VIEW_REPORTS = "view_reports"
    MANAGE_SETTINGS = "manage_settings"


class PermissionGate(ABC):
    """Answers whether an actor holds a capability."""

    @abstractmethod
    def has_permission(self, actor_id: Optional[str], permission: Permission) -> bool:
        ...


class AllowAllGate(PermissionGate):
    """Gate for trusted in-process callers."""

    def has_permission(self, actor_id: Optional[str], permission: Permission) -> bool:
        return True


def require(gate: PermissionGate, actor_id: Optional[str], permission: Permission) -> None:
    """Raise PermissionDeniedError unless the gate grants the permission."""
    if not gate.has_permission(actor_id, permission):
        raise PermissionDeniedError(actor_id, Permission(permission).value)
