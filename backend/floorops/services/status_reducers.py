"""Pure reducers for derived order and customer state.

These are invoked after every mutation instead of recalculating inline, so
the aggregation rules can be tested in isolation.
"""

from typing import Iterable, Optional

from floorops.schemas.common import TERMINAL_STATUSES, OrderStatus
from floorops.schemas.customer import CustomerTier

DONE_STATION_STATUSES = frozenset({OrderStatus.SERVED, OrderStatus.NONE})


def aggregate_station_status(item_statuses: Iterable[Optional[OrderStatus]]) -> OrderStatus:
    """Summarize the items routed to one station.

    No items -> NONE. SERVED when every item is served, PENDING when every
    item is pending (or unset), else COOKING. A cancelled item is neither, so
    it keeps its station COOKING.
    """
    statuses = list(item_statuses)
    if not statuses:
        return OrderStatus.NONE
    if all(s == OrderStatus.SERVED for s in statuses):
        return OrderStatus.SERVED
    if all(s is None or s == OrderStatus.PENDING for s in statuses):
        return OrderStatus.PENDING
    return OrderStatus.COOKING


def is_station_done(status: Optional[OrderStatus]) -> bool:
    """A station with nothing left to prepare. Unset counts as NONE."""
    return status is None or status in DONE_STATION_STATUSES


def derive_global_status(
    current: OrderStatus,
    kitchen_status: OrderStatus,
    bar_status: OrderStatus,
) -> OrderStatus:
    """Promote the order status from its station statuses.

    Terminal orders are returned unchanged and the status is never downgraded.
    """
    if current in TERMINAL_STATUSES:
        return current
    if is_station_done(kitchen_status) and is_station_done(bar_status):
        return OrderStatus.SERVED
    if current == OrderStatus.PENDING and OrderStatus.COOKING in (kitchen_status, bar_status):
        return OrderStatus.COOKING
    return current


def calculate_tier(points: int, silver_threshold: int = 100_000, gold_threshold: int = 500_000) -> CustomerTier:
    if points >= gold_threshold:
        return CustomerTier.GOLD
    if points >= silver_threshold:
        return CustomerTier.SILVER
    return CustomerTier.BRONZE
