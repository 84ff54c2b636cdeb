# backend/modules/menu_builder/services/notification_service.py

"""
User-facing notification channel for the menu editor.

Listeners (the UI's toast/snackbar) subscribe to receive every
notification; a bounded history is kept for late subscribers and tests.
"""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from modules.menu_builder.schemas import Notification, Severity

logger = logging.getLogger(__name__)

Listener = Callable[[Notification], None]


class NotificationService:
    """Fan-out of notifications to subscribed listeners"""

    def __init__(self, max_history: int = 50):
        self._listeners: List[Listener] = []
        self._history: Deque[Notification] = deque(maxlen=max_history)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        operation: Optional[str] = None,
    ) -> Notification:
        notification = Notification(message=message, severity=severity, operation=operation)
        self._history.append(notification)

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}", exc_info=True)

        return notification

    def success(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify(message, Severity.SUCCESS, operation)

    def info(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify(message, Severity.INFO, operation)

    def warning(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify(message, Severity.WARNING, operation)

    def error(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify(message, Severity.ERROR, operation)

    @property
    def history(self) -> List[Notification]:
        return list(self._history)

    def errors(self) -> List[Notification]:
        return [n for n in self._history if n.severity == Severity.ERROR]

    def clear(self) -> None:
        self._history.clear()
