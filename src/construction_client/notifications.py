"""
Notification bus for cross-cutting client events.

Publishing is synchronous and best-effort: a listener that raises is logged
and skipped, it never reaches the dispatcher or the other listeners.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

from .types import Notification, NotificationKind, NotificationListener

logger = logging.getLogger("construction_client.notifications")


class NotificationBus:
    """Typed publish/subscribe sink.

    Example:
        bus = NotificationBus()
        unsubscribe = bus.subscribe(lambda event: print(event.kind, event.message))
        bus.emit(NotificationKind.SLOW_REQUEST, "Request slower than usual")
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: List[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Add a listener. Returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Notification) -> None:
        """Deliver an event to every listener subscribed right now."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"Notification listener {listener!r} failed on {event.kind.value}"
                )

    def emit(
        self,
        kind: NotificationKind,
        message: str,
        code: Optional[Union[str, int]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Build and publish an event in one call."""
        event = Notification(
            kind=kind,
            message=message,
            code=code,
            context=context or {},
            timestamp=time.time(),
        )
        self.publish(event)
        return event

    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()
