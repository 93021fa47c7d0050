"""Transient notifications (toasts) raised by the sync engine."""
from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Notifier(Protocol):
    def notify(self, message: str, severity: Severity = Severity.INFO, auto_dismiss: float | None = None) -> int:
        ...


@dataclass(frozen=True, slots=True)
class Notification:
    id: int
    message: str
    severity: Severity
    auto_dismiss: float


class NotificationCenter:
    """In-memory notification stack.

    Ids come from a per-instance sequence. Notifications with a positive
    ``auto_dismiss`` retire themselves after that many seconds when an event
    loop is running; concurrent notifications simply stack.
    """

    def __init__(self, *, default_duration: float = 3.0) -> None:
        self.default_duration = default_duration
        self._ids = itertools.count()
        self._active: dict[int, Notification] = {}
        self.history: list[Notification] = []

    @property
    def active(self) -> list[Notification]:
        return list(self._active.values())

    def notify(self, message: str, severity: Severity = Severity.INFO, auto_dismiss: float | None = None) -> int:
        duration = self.default_duration if auto_dismiss is None else auto_dismiss
        notification = Notification(next(self._ids), message, Severity(severity), duration)
        self._active[notification.id] = notification
        self.history.append(notification)
        log = logger.warning if notification.severity in (Severity.ERROR, Severity.WARNING) else logger.info
        log("[%s] %s", notification.severity.value, message)

        if duration > 0:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                loop.call_later(duration, self.dismiss, notification.id)
        return notification.id

    def success(self, message: str, auto_dismiss: float | None = None) -> int:
        return self.notify(message, Severity.SUCCESS, auto_dismiss)

    def error(self, message: str, auto_dismiss: float | None = None) -> int:
        return self.notify(message, Severity.ERROR, auto_dismiss)

    def warning(self, message: str, auto_dismiss: float | None = None) -> int:
        return self.notify(message, Severity.WARNING, auto_dismiss)

    def info(self, message: str, auto_dismiss: float | None = None) -> int:
        return self.notify(message, Severity.INFO, auto_dismiss)

    def dismiss(self, notification_id: int) -> None:
        self._active.pop(notification_id, None)

    def messages(self, severity: Severity | None = None) -> list[str]:
        return [item.message for item in self.history if severity is None or item.severity == severity]
