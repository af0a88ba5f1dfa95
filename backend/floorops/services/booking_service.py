"""Bookings and their table reservations."""

import logging
import threading
from datetime import date
from typing import Dict, List, Optional

from floorops.core.alerting import NotificationSink
from floorops.schemas.booking import Booking, BookingCreate, BookingStatus, BookingUpdate
from floorops.schemas.common import OperationResult, Severity
from floorops.services.table_service import TableTopologyManager

logger = logging.getLogger(__name__)


class BookingService:
    """Bookings keyed by id.

    A confirmed booking with a table holds that table RESERVED. Cancelling
    or deleting it frees the table only while it is still RESERVED, so a
    table taken by walk-ins in the meantime is not disturbed.
    """

    def __init__(self, tables: TableTopologyManager, sink: Optional[NotificationSink] = None):
        self.tables = tables
        self.sink = sink
        self._bookings: Dict[str, Booking] = {}
        self._lock = threading.RLock()

    def add_booking(self, payload: BookingCreate) -> OperationResult:
        booking = Booking(**payload.model_dump())
        with self.tables.locked(), self._lock:
            if booking.id in self._bookings:
                return OperationResult.declined(f"Booking {booking.id} already exists")
            if self._holds_table(booking):
                reserved = self.tables.reserve(booking.table_id)
                if not reserved:
                    return reserved
            self._bookings[booking.id] = booking
        logger.info(
            f"Booking {booking.id} for {booking.customer_name} ({booking.guest_count} guests) "
            f"on {booking.booking_date} {booking.booking_time}, {booking.status.value}"
        )
        self._notify(Severity.SUCCESS, f"Booking added for {booking.customer_name}")
        return OperationResult.ok("Booking added", data=booking.model_copy())

    def update_booking(self, booking_id: str, changes: BookingUpdate) -> OperationResult:
        with self.tables.locked(), self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                logger.debug(f"Booking {booking_id} not found")
                return OperationResult.declined("Booking not found")

            data = current.model_dump()
            data.update(changes.model_dump(exclude_unset=True))
            updated = Booking.model_validate(data)

            result = self._move_reservation(current, updated)
            if not result:
                return result
            self._bookings[booking_id] = updated
        logger.info(f"Booking {booking_id} updated ({updated.status.value})")
        return OperationResult.ok("Booking updated", data=updated.model_copy())

    def confirm(self, booking_id: str, table_id: Optional[str] = None) -> OperationResult:
        fields = {"status": BookingStatus.CONFIRMED}
        if table_id is not None:
            fields["table_id"] = table_id
        return self.update_booking(booking_id, BookingUpdate(**fields))

    def cancel(self, booking_id: str) -> OperationResult:
        return self.update_booking(booking_id, BookingUpdate(status=BookingStatus.CANCELLED))

    def delete_booking(self, booking_id: str) -> OperationResult:
        with self.tables.locked(), self._lock:
            booking = self._bookings.pop(booking_id, None)
            if booking is None:
                logger.debug(f"Booking {booking_id} not found")
                return OperationResult.declined("Booking not found")
            if self._holds_table(booking):
                self.tables.release_reservation(booking.table_id)
        logger.info(f"Deleted booking {booking_id}")
        return OperationResult.ok("Booking deleted")

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy() if booking else None

    def list_bookings(self, booking_date: Optional[date] = None) -> List[Booking]:
        """Bookings ordered by date and time."""
        with self._lock:
            bookings = [b.model_copy() for b in self._bookings.values()]
        if booking_date is not None:
            bookings = [b for b in bookings if b.booking_date == booking_date]
        return sorted(bookings, key=lambda b: (b.booking_date, b.booking_time))

    @staticmethod
    def _holds_table(booking: Booking) -> bool:
        return booking.status == BookingStatus.CONFIRMED and bool(booking.table_id)

    def _move_reservation(self, current: Booking, updated: Booking) -> OperationResult:
        """Reserve the new table before releasing the old one."""
        held_before = current.table_id if self._holds_table(current) else None
        held_after = updated.table_id if self._holds_table(updated) else None
        if held_before == held_after:
            return OperationResult.ok()
        if held_after:
            reserved = self.tables.reserve(held_after)
            if not reserved:
                return reserved
        if held_before:
            self.tables.release_reservation(held_before)
        return OperationResult.ok()

    def _notify(self, severity: Severity, message: str) -> None:
        if self.sink is not None:
            self.sink.notify(severity, message)
