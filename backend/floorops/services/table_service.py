"""Table Topology Manager.

Tracks occupancy, reservations, the call bell and merge/transfer relations
between physical tables.

Merge graph rules:
- only a master holds children, and a master is never itself a child
- a master holding children is never AVAILABLE
- setting a table AVAILABLE clears its children and its call flag; each
  former child is then resolved on its own (OCCUPIED if it still has active
  orders, else AVAILABLE)

All table mutations run under one re-entrant topology lock. Order operations
that occupy or free a table take the same lock, so a table can never be freed
while a new order for it is being registered.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from floorops.core.alerting import NotificationSink
from floorops.core.config import Settings, get_settings
from floorops.schemas.common import OperationResult, Severity
from floorops.schemas.table import Table, TableCreate, TableStatus, TableUpdate, Zone

logger = logging.getLogger(__name__)


class TableTopologyManager:
    """Tables and zones of the floor plan."""

    def __init__(self, orders=None, sink: Optional[NotificationSink] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.orders = orders
        self.sink = sink
        self._tables: Dict[str, Table] = {}
        self._zones: Dict[str, Zone] = {}
        self._lock = threading.RLock()

    @contextmanager
    def locked(self):
        """Hold the topology lock across several calls."""
        with self._lock:
            yield

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    def add_zone(self, zone: Zone) -> Zone:
        with self._lock:
            if zone.id in self._zones:
                raise ValueError(f"Zone {zone.id} already exists")
            self._zones[zone.id] = zone.model_copy()
        logger.info(f"Added zone {zone.name}")
        return zone.model_copy()

    def update_zone(self, zone_id: str, name: Optional[str] = None, description: Optional[str] = None) -> Optional[Zone]:
        """Rename or describe a zone. Renames carry over to the zone's tables."""
        with self._lock:
            zone = self._zones.get(zone_id)
            if zone is None:
                logger.debug(f"Zone {zone_id} not found")
                return None
            if name and name != zone.name:
                for table in self._tables.values():
                    if table.zone == zone.name:
                        table.zone = name
                logger.info(f"Renamed zone {zone.name} -> {name}")
                zone.name = name
            if description is not None:
                zone.description = description
            return zone.model_copy()

    def delete_zone(self, zone_id: str) -> OperationResult:
        with self._lock:
            zone = self._zones.get(zone_id)
            if zone is None:
                logger.debug(f"Zone {zone_id} not found")
                return OperationResult.declined("Zone not found")
            assigned = [t.id for t in self._tables.values() if t.zone == zone.name]
            if assigned:
                logger.warning(f"Refusing to delete zone {zone.name}: {len(assigned)} tables assigned")
                return OperationResult.declined(
                    f"Cannot delete zone {zone.name}: {len(assigned)} tables are assigned to it"
                )
            del self._zones[zone_id]
        logger.info(f"Deleted zone {zone.name}")
        return OperationResult.ok("Zone deleted")

    def get_zone(self, zone_id: str) -> Optional[Zone]:
        with self._lock:
            zone = self._zones.get(zone_id)
            return zone.model_copy() if zone else None

    def list_zones(self) -> List[Zone]:
        with self._lock:
            return [z.model_copy() for z in self._zones.values()]

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def add_table(self, payload: TableCreate) -> Table:
        table = Table(**payload.model_dump())
        with self._lock:
            if table.id in self._tables:
                raise ValueError(f"Table {table.id} already exists")
            self._tables[table.id] = table
        logger.info(f"Added table {table.id} ({table.name}) in {table.zone}")
        return table.model_copy(deep=True)

    def update_table(self, table_id: str, changes: TableUpdate) -> Optional[Table]:
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return None
            for field, value in changes.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(table, field, value)
            return table.model_copy(deep=True)

    def delete_table(self, table_id: str) -> OperationResult:
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return OperationResult.declined("Table not found")
            if self.orders is not None and self.orders.has_active_orders(table_id):
                logger.warning(f"Refusing to delete table {table_id}: it has active orders")
                return OperationResult.declined("Cannot delete a table with active orders")
            if table.merged_with or self._master_of_locked(table_id):
                logger.warning(f"Refusing to delete table {table_id}: it is part of a merge")
                return OperationResult.declined("Cannot delete a merged table")
            del self._tables[table_id]
        logger.info(f"Deleted table {table_id}")
        return OperationResult.ok("Table deleted")

    def get_table(self, table_id: str) -> Optional[Table]:
        with self._lock:
            table = self._tables.get(table_id)
            return table.model_copy(deep=True) if table else None

    def list_tables(self, zone: Optional[str] = None) -> List[Table]:
        with self._lock:
            tables = [t.model_copy(deep=True) for t in self._tables.values()]
        if zone is not None:
            tables = [t for t in tables if t.zone == zone]
        return tables

    def master_of(self, table_id: str) -> Optional[str]:
        """Id of the master a table is merged into, if any."""
        with self._lock:
            return self._master_of_locked(table_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def set_status(self, table_id: str, status: TableStatus) -> Optional[Table]:
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return None
            self._set_status_locked(table, TableStatus(status))
            return table.model_copy(deep=True)

    def occupy(self, table_id: str) -> Optional[Table]:
        """Mark a table OCCUPIED because an order was sent for it."""
        if self.settings.is_takeout(table_id):
            return None
        return self.set_status(table_id, TableStatus.OCCUPIED)

    def reserve(self, table_id: str) -> OperationResult:
        """Hold a table for a confirmed booking.

        Declined when the table is already reserved. An occupied table stays
        occupied; the booking keeps its table assignment.
        """
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return OperationResult.declined("Table not found")
            if table.status == TableStatus.RESERVED:
                logger.warning(f"Table {table_id} is already reserved")
                return OperationResult.declined(f"Table {table.name} is already reserved")
            if table.status == TableStatus.OCCUPIED:
                logger.info(f"Table {table_id} is occupied, reservation noted without status change")
                return OperationResult.ok(f"Table {table.name} is currently occupied")
            self._set_status_locked(table, TableStatus.RESERVED)
        return OperationResult.ok(f"Table {table.name} reserved")

    def release_reservation(self, table_id: str) -> bool:
        """Free a reserved table. Tables occupied in the meantime are left alone."""
        with self._lock:
            table = self._get(table_id)
            if table is None or table.status != TableStatus.RESERVED:
                return False
            self._set_status_locked(table, TableStatus.AVAILABLE)
        return True

    def check_in(self, table_id: str) -> OperationResult:
        """Seat the guests of a reservation: RESERVED -> OCCUPIED."""
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return OperationResult.declined("Table not found")
            if table.status != TableStatus.RESERVED:
                logger.warning(f"Check-in declined for table {table_id}: status {table.status.value}")
                return OperationResult.declined(f"Table {table.name} is not reserved")
            self._set_status_locked(table, TableStatus.OCCUPIED)
        return OperationResult.ok(f"Table {table.name} checked in")

    def try_free_table(self, table_id: str, excluding_order_id: Optional[str] = None) -> bool:
        """Set a table AVAILABLE if no other active order remains on it."""
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return False
            if self.orders is not None and self.orders.has_active_orders(table_id, excluding_order_id):
                logger.debug(f"Table {table_id} still has active orders")
                return False
            self._set_status_locked(table, TableStatus.AVAILABLE)
        return True

    # ------------------------------------------------------------------
    # Call bell
    # ------------------------------------------------------------------

    def toggle_call(self, table_id: str, is_calling: bool) -> Optional[Table]:
        with self._lock:
            table = self._get(table_id)
            if table is None:
                return None
            table.is_calling_staff = is_calling
            snapshot = table.model_copy(deep=True)
        if is_calling and self.sink is not None and self.settings.in_app_notifications:
            self.sink.notify(Severity.WARNING, f"Table {snapshot.name} is calling for service!")
        logger.info(f"Table {table_id} call {'raised' if is_calling else 'cleared'}")
        return snapshot

    def acknowledge_call(self, table_id: str) -> Optional[Table]:
        return self.toggle_call(table_id, False)

    # ------------------------------------------------------------------
    # Merge / transfer
    # ------------------------------------------------------------------

    def merge(self, master_id: str, slave_id: str) -> OperationResult:
        """Attach ``slave_id`` to ``master_id``. The slave becomes OCCUPIED, as does an AVAILABLE master."""
        with self._lock:
            if master_id == slave_id:
                return OperationResult.declined("Cannot merge a table into itself")
            master = self._get(master_id)
            slave = self._get(slave_id)
            if master is None or slave is None:
                return OperationResult.declined("Table not found")
            if slave.merged_with:
                logger.warning(f"Merge declined: {slave_id} already has merged tables")
                return OperationResult.declined("Cannot merge a table that already has merged tables.")
            if self._master_of_locked(slave_id):
                logger.warning(f"Merge declined: {slave_id} is already merged into another table")
                return OperationResult.declined("This table is already merged into another.")
            if self._master_of_locked(master_id):
                logger.warning(f"Merge declined: {master_id} is itself merged into another table")
                return OperationResult.declined("Cannot merge into a table that is merged into another.")

            master.merged_with.append(slave_id)
            slave.status = TableStatus.OCCUPIED
            if master.status == TableStatus.AVAILABLE:
                master.status = TableStatus.OCCUPIED
            self._check_merge_graph()
        logger.info(f"Merged table {slave_id} into {master_id}")
        return OperationResult.ok(f"Table {slave.name} merged into {master.name}")

    def unmerge(self, master_id: str, slave_id: str) -> OperationResult:
        with self._lock:
            master = self._get(master_id)
            if master is None or slave_id not in master.merged_with:
                return OperationResult.declined(f"Table {slave_id} is not merged into {master_id}")
            master.merged_with.remove(slave_id)
            self._resolve_released(slave_id)
        logger.info(f"Unmerged table {slave_id} from {master_id}")
        return OperationResult.ok("Table unmerged")

    def unmerge_all(self, master_id: str) -> OperationResult:
        with self._lock:
            master = self._get(master_id)
            if master is None:
                return OperationResult.declined("Table not found")
            children, master.merged_with = master.merged_with, []
            for child_id in children:
                self._resolve_released(child_id)
        logger.info(f"Unmerged {len(children)} tables from {master_id}")
        return OperationResult.ok(f"{len(children)} tables unmerged")

    def transfer(self, from_id: str, to_id: str) -> OperationResult:
        """Move every active order and merged child from one table to another.

        The target must be AVAILABLE. The source ends up AVAILABLE with no
        children; the target OCCUPIED with the source's former children.
        """
        with self._lock:
            if from_id == to_id:
                return OperationResult.declined("Source and target are the same table")
            source = self._get(from_id)
            target = self._get(to_id)
            if source is None or target is None:
                return OperationResult.declined("Table not found")
            if target.status != TableStatus.AVAILABLE:
                logger.warning(f"Transfer declined: {to_id} is {target.status.value}")
                return OperationResult.declined(f"Table {target.name} is not available")

            moved = self.orders.reassign_table(from_id, to_id) if self.orders is not None else []
            children, source.merged_with = source.merged_with, []
            self._set_status_locked(source, TableStatus.AVAILABLE)
            target.status = TableStatus.OCCUPIED
            target.merged_with = children
            self._check_merge_graph()
        logger.info(f"Transferred {len(moved)} orders and {len(children)} merged tables from {from_id} to {to_id}")
        return OperationResult.ok(f"Moved to {target.name}", data=moved)

    # ------------------------------------------------------------------
    # Internals (caller holds the topology lock)
    # ------------------------------------------------------------------

    def _get(self, table_id: str) -> Optional[Table]:
        table = self._tables.get(table_id)
        if table is None:
            logger.debug(f"Table {table_id} not found")
        return table

    def _master_of_locked(self, table_id: str) -> Optional[str]:
        for table in self._tables.values():
            if table_id in table.merged_with:
                return table.id
        return None

    def _set_status_locked(self, table: Table, status: TableStatus) -> None:
        previous = table.status
        if status == TableStatus.AVAILABLE:
            children, table.merged_with = table.merged_with, []
            table.is_calling_staff = False
            master_id = self._master_of_locked(table.id)
            if master_id:
                self._tables[master_id].merged_with.remove(table.id)
            table.status = TableStatus.AVAILABLE
            for child_id in children:
                self._resolve_released(child_id)
        else:
            table.status = status
        if previous != table.status:
            logger.info(f"Table {table.id}: {previous.value} -> {table.status.value}")

    def _resolve_released(self, table_id: str) -> None:
        """Status of a table that just left a merge, from its own orders."""
        table = self._tables.get(table_id)
        if table is None:
            return
        if self.orders is not None and self.orders.has_active_orders(table_id):
            table.status = TableStatus.OCCUPIED
        else:
            table.status = TableStatus.AVAILABLE
            table.is_calling_staff = False

    def _check_merge_graph(self) -> None:
        children = [c for t in self._tables.values() for c in t.merged_with]
        assert len(children) == len(set(children)), "table merged into two masters"
        assert not any(self._tables[c].merged_with for c in children if c in self._tables), "merge depth exceeds one"
