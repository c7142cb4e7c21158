"""Event bus ports for in-process domain event handling.

Order status changes and payment outcomes are published here after the
owning transaction has done its work; handlers must not mutate order state.
"""

from __future__ import annotations

from typing import Generic, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...
