"""Table and zone schemas."""

import enum
from typing import List, Optional

from pydantic import BaseModel, Field

from floorops.schemas.common import new_id


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class Zone(BaseModel):
    """Display grouping for tables. Tables reference a zone by name."""

    id: str = Field(default_factory=lambda: new_id("zone"))
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class Table(BaseModel):
    """Physical table.

    ``merged_with`` is only populated on a master table and lists its children.
    """

    id: str
    name: str
    zone: str
    seat_count: int = 4
    status: TableStatus = TableStatus.AVAILABLE
    merged_with: List[str] = []
    is_calling_staff: bool = False

    @property
    def is_master(self) -> bool:
        return bool(self.merged_with)


class TableCreate(BaseModel):
    """Table creation schema."""

    id: str = Field(default_factory=lambda: new_id("t"))
    name: str = Field(..., min_length=1, max_length=50)
    zone: str = Field(..., min_length=1)
    seat_count: int = Field(default=4, ge=1, le=50)


class TableUpdate(BaseModel):
    """Layout edits. Status and merges have their own operations."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    zone: Optional[str] = Field(default=None, min_length=1)
    seat_count: Optional[int] = Field(default=None, ge=1, le=50)
