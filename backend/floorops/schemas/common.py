"""Shared schema types: enums used across components, notifications, results."""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class OrderStatus(str, enum.Enum):
    """Order, station and item status values.

    Items only ever use PENDING, COOKING, SERVED and CANCELLED. Stations use
    NONE when no item of the order routes to them.
    """

    PENDING = "pending"
    COOKING = "cooking"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NONE = "none"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class Station(str, enum.Enum):
    KITCHEN = "kitchen"
    BAR = "bar"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    QR = "qr"
    CARD = "card"


class Severity(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A fire-and-forget event delivered to the notification sink."""

    id: str
    severity: Severity
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


@dataclass
class OperationResult:
    """Outcome of a mutating operation that can be declined.

    Declined results leave every entity untouched; ``message`` explains why.
    """

    success: bool
    message: str = ""
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def declined(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)

    def __bool__(self) -> bool:
        return self.success
