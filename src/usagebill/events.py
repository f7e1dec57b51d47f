"""
In-process event bus.

Billing services publish domain events here once their work is durably
committed. Subscribers are async callables registered per event type
(or ``"*"`` for every event).
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)


class EventPriority(str, Enum):
    """Delivery priority hint carried on every event."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Event:
    """A published domain event."""

    event_type: str
    payload: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Async publish/subscribe bus with per-type handler lists."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self.published: list[Event] = []
        self.keep_history = False

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type ("*" matches all)."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Event:
        """
        Publish an event to all matching handlers.

        Handlers run sequentially in registration order. A failing handler
        is logged and does not prevent delivery to the remaining handlers;
        publishers only call this after their own state is committed.
        """
        event = Event(
            event_type=event_type,
            payload=payload,
            metadata=metadata or {},
            priority=priority,
        )
        if self.keep_history:
            self.published.append(event)

        for handler in [*self._handlers.get(event_type, []), *self._handlers.get("*", [])]:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    event_type=event_type,
                    event_id=event.event_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
        return event

    def clear(self) -> None:
        """Drop all handlers and recorded history."""
        self._handlers.clear()
        self.published.clear()


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus (mainly for testing)."""
    global _event_bus
    _event_bus = None


__all__ = ["Event", "EventBus", "EventHandler", "EventPriority", "get_event_bus", "reset_event_bus"]
