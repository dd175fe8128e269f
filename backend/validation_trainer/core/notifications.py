from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from threading import Lock
from typing import Callable
from uuid import uuid4

logger = logging.getLogger("validation.notifications")


class NotificationKind(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class Notification:
    id: str
    message: str
    kind: NotificationKind


Listener = Callable[[list[Notification]], None]


class NotificationCenter:
    """Dismissible user-facing notices.

    Each instance is independent; pass one to whatever needs to surface
    errors. Listeners get a fresh snapshot list after every change.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: list[Notification] = []
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    def _notify(self) -> None:
        with self._lock:
            items = list(self._items)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(list(items))

    def show(self, message: str, kind: NotificationKind | str = NotificationKind.INFO) -> str:
        notification = Notification(
            id=uuid4().hex[:8], message=message, kind=NotificationKind(kind)
        )
        with self._lock:
            self._items.append(notification)
        if notification.kind == NotificationKind.ERROR:
            logger.info("error notice shown: %s", message)
        self._notify()
        return notification.id

    def remove(self, notification_id: str) -> None:
        with self._lock:
            self._items = [item for item in self._items if item.id != notification_id]
        self._notify()

    def success(self, message: str) -> str:
        return self.show(message, NotificationKind.SUCCESS)

    def error(self, message: str) -> str:
        return self.show(message, NotificationKind.ERROR)

    def info(self, message: str) -> str:
        return self.show(message, NotificationKind.INFO)

    def warning(self, message: str) -> str:
        return self.show(message, NotificationKind.WARNING)
