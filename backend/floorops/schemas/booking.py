"""Booking schemas."""

import enum
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from floorops.schemas.common import new_id, utcnow


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(BaseModel):
    """Table booking."""

    id: str
    customer_name: str
    phone: str
    booking_date: date
    booking_time: time
    guest_count: int
    status: BookingStatus = BookingStatus.PENDING
    table_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class BookingCreate(BaseModel):
    """Booking creation schema."""

    id: str = Field(default_factory=lambda: new_id("bk"))
    customer_name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=30)
    booking_date: date
    booking_time: time
    guest_count: int = Field(default=2, ge=1, le=100)
    status: BookingStatus = BookingStatus.PENDING
    table_id: Optional[str] = None
    note: Optional[str] = None


class BookingUpdate(BaseModel):
    """Partial booking update. Only fields explicitly set are applied."""

    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, min_length=3, max_length=30)
    booking_date: Optional[date] = None
    booking_time: Optional[time] = None
    guest_count: Optional[int] = Field(default=None, ge=1, le=100)
    status: Optional[BookingStatus] = None
    table_id: Optional[str] = None
    note: Optional[str] = None
