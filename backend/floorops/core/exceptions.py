"""Engine exceptions.

Expected business failures (merging into a merged table, redeeming a coupon
without enough points) are returned as declined ``OperationResult`` values.
The exceptions below cover caller mistakes that have no sensible declined form.
"""

from typing import Optional


class FloorOpsError(Exception):
    """Base class for engine errors."""


class PermissionDeniedError(FloorOpsError):
    """Raised when an actor lacks the capability an operation requires."""

    def __init__(self, actor_id: Optional[str], permission: str):
        self.actor_id = actor_id
        self.permission = permission
        super().__init__(f"Actor '{actor_id}' lacks permission '{permission}'")


class InvalidStatusError(FloorOpsError):
    """Raised when a status outside the allowed set is requested."""

    def __init__(self, status: str, allowed):
        self.status = status
        self.allowed = sorted(str(getattr(a, "value", a)) for a in allowed)
        super().__init__(
            f"Status '{getattr(status, 'value', status)}' is not allowed here; "
            f"expected one of {self.allowed}"
        )
