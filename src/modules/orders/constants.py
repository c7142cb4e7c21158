"""Order domain constants.

Defines the order status enumeration and the fixed transition table the
order state machine validates against.

Business flow:
- COD:     PENDING_PAYMENT -> CONFIRMED -> PREPARING -> SHIPPING -> DELIVERED -> COMPLETED
- Online:  PENDING_PAYMENT -> PAID -> CONFIRMED -> ... -> COMPLETED
- Cancel:  PENDING_PAYMENT / PAID / CONFIRMED / PREPARING -> CANCELLED
- Return:  DELIVERED / COMPLETED -> RETURNED
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING_PAYMENT = "PENDING_PAYMENT", "Awaiting payment"
    PAID = "PAID", "Paid"
    CONFIRMED = "CONFIRMED", "Confirmed"
    PREPARING = "PREPARING", "Preparing"
    SHIPPING = "SHIPPING", "Shipping"
    DELIVERED = "DELIVERED", "Delivered"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    RETURNED = "RETURNED", "Returned"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def code(self) -> str:
        return self.value

    @property
    def is_final(self) -> bool:
        """``True`` when no transition leaves this status.

        Finality is read from the transition table, so COMPLETED is *not*
        final: it can still move to RETURNED.
        """
        return not VALID_TRANSITIONS[self]

    @property
    def is_cancellable(self) -> bool:
        return self.rank < OrderStatus.SHIPPING.rank and not self.is_final

    @property
    def is_returnable(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.COMPLETED)

    @classmethod
    def from_code(cls, code: Optional[str]) -> Optional[OrderStatus]:
        if code is None:
            return None
        try:
            return cls(code)
        except ValueError:
            return None

    @classmethod
    def from_rank(cls, rank: Optional[int]) -> Optional[OrderStatus]:
        for status, value in _RANKS.items():
            if value == rank:
                return status
        return None


_RANKS: Mapping[OrderStatus, int] = MappingProxyType(
    {status: position for position, status in enumerate(OrderStatus, start=1)}
)


VALID_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.PENDING_PAYMENT: frozenset(
            {OrderStatus.PAID, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
        ),
        OrderStatus.PAID: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset(
            {OrderStatus.PREPARING, OrderStatus.CANCELLED}
        ),
        OrderStatus.PREPARING: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset(
            {OrderStatus.COMPLETED, OrderStatus.RETURNED}
        ),
        OrderStatus.COMPLETED: frozenset({OrderStatus.RETURNED}),
        OrderStatus.CANCELLED: frozenset(),
        OrderStatus.RETURNED: frozenset(),
    }
)

TERMINAL_STATES: frozenset[OrderStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

INITIAL_STATUS = OrderStatus.PENDING_PAYMENT
INITIAL_STATUS_NOTE = "awaiting payment"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"
