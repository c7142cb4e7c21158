"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised after a status record is appended to the ledger.

    ``old_status`` is ``None`` for the initial record.
    """

    old_status: Optional[str] = None
    new_status: str = ""
    note: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""

    reason: str = ""
