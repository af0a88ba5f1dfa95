"""Staff and role schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field

from floorops.core.rbac import Permission
from floorops.schemas.common import new_id


class Role(BaseModel):
    """Named bundle of permissions. System roles cannot be deleted."""

    id: str = Field(default_factory=lambda: new_id("r"))
    name: str = Field(..., min_length=1, max_length=100)
    permissions: List[Permission] = []
    is_system: bool = False


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    permissions: Optional[List[Permission]] = None


class StaffUser(BaseModel):
    """Employee account."""

    id: str = Field(default_factory=lambda: new_id("u"))
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=1, max_length=50)
    role_id: str


class StaffUserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    role_id: Optional[str] = None
