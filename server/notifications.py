"""
Siteadmin - Notification Store
==============================
Bounded, newest-first, in-memory log of system notifications.

Every added notification is also pushed to all WebSocket clients as a
"notification" event, in the same step as the insert, so clients see
notifications in creation order.

The log lives for the lifetime of the process only.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from server.websocket import WebSocketManager


MAX_NOTIFICATIONS = 100

CATEGORIES = ("update", "error", "info")


@dataclass
class Notification:
    """A single entry in the notification log."""

    id: int
    category: str
    title: str
    message: str
    description: str | None = None
    url: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "message": self.message,
            "description": self.description,
            "url": self.url,
            "createdAt": self.created_at,
            "read": self.read,
        }


class NotificationStore:
    """
    Holds at most `capacity` notifications, newest first.

    Attributes:
        ws:       WebSocket manager used to push new notifications.
        capacity: Maximum number of notifications kept; oldest are evicted.
    """

    def __init__(self, ws_manager: WebSocketManager, capacity: int = MAX_NOTIFICATIONS):
        self.ws = ws_manager
        self.capacity = capacity
        self._items: list[Notification] = []
        self._last_id = 0

    async def add(
        self,
        category: str,
        title: str,
        message: str,
        description: str | None = None,
        url: str | None = None,
    ) -> Notification:
        """
        Create a notification, store it and broadcast it.

        Args:
            category:    One of CATEGORIES.
            title:       Short headline.
            message:     Main text.
            description: Optional longer text (e.g. release notes).
            url:         Optional link.

        Returns:
            The stored Notification.

        Raises:
            ValueError: If the category is unknown.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown notification category: {category!r}")

        notification = Notification(
            id=self._next_id(),
            category=category,
            title=title,
            message=message,
            description=description,
            url=url,
        )
        self._items.insert(0, notification)
        del self._items[self.capacity:]

        await self.ws.broadcast("notification", notification.to_dict())
        return notification

    def mark_read(self, ids: Iterable[int]) -> int:
        """
        Flag the given notifications as read.

        Unknown ids are ignored; repeating the call changes nothing.

        Returns:
            Number of notifications that were unread before this call.
        """
        wanted = set(ids)
        changed = 0
        for notification in self._items:
            if notification.id in wanted and not notification.read:
                notification.read = True
                changed += 1
        return changed

    def list(self) -> list[Notification]:
        """Return all stored notifications, newest first."""
        return list(self._items)

    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def _next_id(self) -> int:
        # Epoch milliseconds, bumped to stay strictly increasing
        candidate = int(time.time() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id
