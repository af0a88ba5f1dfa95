"""In-memory notification sink for floor events."""

import logging
import threading
import uuid
from typing import Callable, List, Optional

from floorops.schemas.common import Notification, Severity

logger = logging.getLogger(__name__)

Subscriber = Callable[[Notification], None]


class NotificationSink:
    """Collects notifications and fans them out to subscribers.

    Delivery is fire-and-forget: a failing subscriber is logged and skipped,
    never surfaced to the operation that raised the notification.
    """

    LEVELS = {
        Severity.INFO: 0,
        Severity.SUCCESS: 0,
        Severity.WARNING: 1,
        Severity.ERROR: 2,
    }

    LOG_LEVELS = {
        Severity.INFO: logging.INFO,
        Severity.SUCCESS: logging.INFO,
        Severity.WARNING: logging.WARNING,
        Severity.ERROR: logging.ERROR,
    }

    def __init__(self, max_buffer: int = 200):
        self.notifications: List[Notification] = []
        self.max_buffer = max_buffer
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def notify(self, severity: Severity, message: str) -> Notification:
        severity = Severity(severity)
        entry = Notification(
            id=f"ntf-{uuid.uuid4().hex[:12]}",
            severity=severity,
            message=message,
        )
        with self._lock:
            self.notifications.append(entry)
            if len(self.notifications) > self.max_buffer:
                self.notifications = self.notifications[-self.max_buffer:]
            subscribers = list(self._subscribers)

        logger.log(self.LOG_LEVELS[severity], f"[{severity.value}] {message}")

        for callback in subscribers:
            try:
                callback(entry)
            except Exception:
                logger.exception(f"Notification subscriber {callback!r} failed")
        return entry

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def recent(self, limit: int = 20, severity: Optional[Severity] = None) -> List[Notification]:
        """Newest first. ``severity`` acts as a minimum level filter."""
        with self._lock:
            entries = list(self.notifications)
        if severity:
            min_level = self.LEVELS[Severity(severity)]
            entries = [n for n in entries if self.LEVELS[n.severity] >= min_level]
        return list(reversed(entries[-limit:]))

    def dismiss(self, notification_id: str) -> bool:
        with self._lock:
            before = len(self.notifications)
            self.notifications = [n for n in self.notifications if n.id != notification_id]
            return len(self.notifications) < before

    def clear(self) -> None:
        with self._lock:
            self.notifications = []

    def __len__(self) -> int:
        with self._lock:
            return len(self.notifications)
