"""Staff directory: roles, employees and the permission gate built on them."""

import logging
import threading
from typing import Dict, List, Optional

from floorops.core.rbac import Permission, PermissionGate, require
from floorops.schemas.common import OperationResult
from floorops.schemas.staff import Role, RoleUpdate, StaffUser, StaffUserUpdate

logger = logging.getLogger(__name__)

ALL_PERMISSIONS = list(Permission)

DEFAULT_ROLES = [
    Role(id="r1", name="Admin", permissions=ALL_PERMISSIONS, is_system=True),
    Role(
        id="r2",
        name="Manager",
        permissions=[
            p for p in ALL_PERMISSIONS
            if p not in (Permission.MANAGE_EMPLOYEES, Permission.MANAGE_SETTINGS)
        ],
    ),
    Role(
        id="r3",
        name="Staff",
        permissions=[
            Permission.ACCESS_POS,
            Permission.VIEW_ORDERS,
            Permission.VIEW_BAR,
            Permission.MANAGE_BOOKINGS,
            Permission.MANAGE_CUSTOMERS,
        ],
    ),
    Role(id="r4", name="Kitchen", permissions=[Permission.VIEW_ORDERS, Permission.MANAGE_INVENTORY]),
]

DEFAULT_USERS = [
    StaffUser(id="u1", name="Admin User", username="admin", role_id="r1"),
    StaffUser(id="u2", name="John Manager", username="manager", role_id="r2"),
    StaffUser(id="u3", name="Sarah Staff", username="staff", role_id="r3"),
    StaffUser(id="u4", name="Chef Mike", username="kitchen", role_id="r4"),
]


class StaffDirectory(PermissionGate):
    """Roles and employees.

    Doubles as the permission gate: an actor holds a permission when their
    role grants it. Mutations take an optional ``actor_id``; when given, the
    actor must hold ``manage_employees``.
    """

    def __init__(self, seed_defaults: bool = True):
        self._roles: Dict[str, Role] = {}
        self._users: Dict[str, StaffUser] = {}
        self._lock = threading.RLock()
        if seed_defaults:
            self._create_default_roles()

    def _create_default_roles(self) -> None:
        for role in DEFAULT_ROLES:
            self._roles[role.id] = role.model_copy(deep=True)
        for user in DEFAULT_USERS:
            self._users[user.id] = user.model_copy()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def has_permission(self, actor_id: Optional[str], permission: Permission) -> bool:
        with self._lock:
            user = self._users.get(actor_id) if actor_id else None
            role = self._roles.get(user.role_id) if user else None
            return role is not None and Permission(permission) in role.permissions

    def _authorize(self, actor_id: Optional[str]) -> None:
        if actor_id is not None:
            require(self, actor_id, Permission.MANAGE_EMPLOYEES)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def add_role(self, role: Role, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id)
        with self._lock:
            if role.id in self._roles:
                return OperationResult.declined(f"Role {role.id} already exists")
            self._roles[role.id] = role.model_copy(deep=True)
        logger.info(f"Added role {role.id} ({role.name})")
        return OperationResult.ok("Role added", data=role.model_copy(deep=True))

    def update_role(self, role_id: str, changes: RoleUpdate, actor_id: Optional[str] = None) -> Optional[Role]:
        self._authorize(actor_id)
        with self._lock:
            role = self._roles.get(role_id)
            if role is None:
                logger.debug(f"Role {role_id} not found")
                return None
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(role, field, value)
            logger.info(f"Updated role {role_id}")
            return role.model_copy(deep=True)

    def delete_role(self, role_id: str, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id)
        with self._lock:
            role = self._roles.get(role_id)
            if role is None:
                return OperationResult.declined("Role not found")
            if role.is_system:
                logger.warning(f"Refusing to delete system role {role_id}")
                return OperationResult.declined(f"Cannot delete system role {role.name}")
            assigned = [u.id for u in self._users.values() if u.role_id == role_id]
            if assigned:
                logger.warning(f"Refusing to delete role {role_id}: assigned to {len(assigned)} users")
                return OperationResult.declined(f"Role {role.name} is still assigned to {len(assigned)} users")
            del self._roles[role_id]
        logger.info(f"Deleted role {role_id}")
        return OperationResult.ok("Role deleted")

    def get_role(self, role_id: str) -> Optional[Role]:
        with self._lock:
            role = self._roles.get(role_id)
            return role.model_copy(deep=True) if role else None

    def list_roles(self) -> List[Role]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._roles.values()]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(self, user: StaffUser, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id)
        with self._lock:
            if user.role_id not in self._roles:
                return OperationResult.declined(f"Role {user.role_id} does not exist")
            if user.id in self._users or any(u.username == user.username for u in self._users.values()):
                return OperationResult.declined(f"User {user.username} already exists")
            self._users[user.id] = user.model_copy()
        logger.info(f"Added user {user.username} with role {user.role_id}")
        return OperationResult.ok("User added", data=user.model_copy())

    def update_user(self, user_id: str, changes: StaffUserUpdate, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return OperationResult.declined("User not found")
            data = changes.model_dump(exclude_unset=True)
            if data.get("role_id") and data["role_id"] not in self._roles:
                return OperationResult.declined(f"Role {data['role_id']} does not exist")
            for field, value in data.items():
                if value is not None:
                    setattr(user, field, value)
            snapshot = user.model_copy()
        logger.info(f"Updated user {user_id}")
        return OperationResult.ok("User updated", data=snapshot)

    def delete_user(self, user_id: str, actor_id: Optional[str] = None) -> OperationResult:
        self._authorize(actor_id)
        if actor_id == user_id:
            return OperationResult.declined("Cannot delete your own account")
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return OperationResult.declined("User not found")
        logger.info(f"Deleted user {user_id}")
        return OperationResult.ok("User deleted")

    def get_user(self, user_id: str) -> Optional[StaffUser]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def list_users(self) -> List[StaffUser]:
        with self._lock:
            return [u.model_copy() for u in self._users.values()]
