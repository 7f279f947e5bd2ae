"""
Bounded notification feed: most recent first, oldest evicted past capacity.
"""
from __future__ import annotations

import threading
import uuid
from collections import deque
from datetime import datetime
from typing import Any

from dinkdrop.models import Notification, NotificationType

DEFAULT_CAPACITY = 20


def make_notification(
    type: NotificationType,
    title: str,
    message: str,
    created_at: datetime,
    payload: dict[str, Any] | None = None,
) -> Notification:
    return Notification(
        id=str(uuid.uuid4()),
        type=type,
        title=title,
        message=message,
        created_at=created_at,
        payload=payload or {},
    )


class NotificationFeed:
    """Holds at most `capacity` notifications, newest at index 0."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        # appendleft + maxlen drops from the right, i.e. the oldest entry
        self._items: deque[Notification] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def push(self, notification: Notification) -> None:
        with self._lock:
            self._items.appendleft(notification)

    def extend(self, notifications: list[Notification]) -> None:
        """Push in emission order, so the last one ends up first."""
        with self._lock:
            for n in notifications:
                self._items.appendleft(n)

    def items(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    def unread(self) -> list[Notification]:
        return [n for n in self.items() if not n.read]

    def mark_read(self, notification_id: str) -> bool:
        with self._lock:
            for n in self._items:
                if n.id == notification_id:
                    n.read = True
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
