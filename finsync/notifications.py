"""
FinSync - Notifications

PURPOSE: Transient user-facing notifications raised by the stores
SCOPE: Success and error toasts, listeners, recorded history
DEPENDENCIES: errors.py
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import SyncError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ''
    variant: str = 'default'
    error_kind: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.variant == 'destructive'


class Notifier:
    """Collects notifications and forwards them to whatever renders them."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self.history: List[Notification] = []
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, notification: Notification) -> None:
        self.history.append(notification)
        if len(self.history) > self.max_history:
            del self.history[:-self.max_history]
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")

    def success(self, title: str, description: str = '') -> None:
        self.notify(Notification(title=title, description=description))

    def error(self, error: SyncError, title: Optional[str] = None) -> None:
        self.notify(Notification(
            title=title or error.title,
            description=error.message,
            variant='destructive',
            error_kind=type(error).__name__,
        ))

    @property
    def errors(self) -> List[Notification]:
        return [n for n in self.history if n.is_error]

    def clear(self) -> None:
        self.history.clear()
