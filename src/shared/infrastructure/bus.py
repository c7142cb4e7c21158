"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Handlers run synchronously in the publisher's thread.  A failing handler
    is logged and does not prevent the remaining handlers from running: the
    state change that produced the event is already committed.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(type(event), []):
            try:
                handler.handle(event)
            except Exception:
                logger.exception(
                    "event_bus.handler_failed",
                    event_name=event.event_name,
                    handler=type(handler).__name__,
                )


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
