"""Domain events primitives for the modular monolith."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union
from uuid import UUID, uuid4

AggregateId = Union[int, UUID, str]


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable)."""

    aggregate_id: AggregateId
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", self.__class__.__name__)


class DomainEventMixin:
    """Mixin for aggregate roots that collect domain events in memory.

    Services publish the collected events once the owning transaction
    commits (``pull_domain_events`` empties the buffer).
    """

    _domain_events: list[DomainEvent]

    def add_domain_event(self, event: DomainEvent) -> None:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        self._domain_events.append(event)

    def pull_domain_events(self) -> list[DomainEvent]:
        events = list(getattr(self, "_domain_events", []))
        self._domain_events = []
        return events

    @property
    def domain_events(self) -> list[DomainEvent]:
        return list(getattr(self, "_domain_events", []))
