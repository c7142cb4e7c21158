"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.  None of them is retried internally.
"""

from __future__ import annotations

from typing import Optional

from modules.orders.constants import OrderStatus


class OrderNotFound(Exception):
    """The requested order does not exist (404)."""

    def __init__(self, order_id: object) -> None:
        super().__init__(f"Order {order_id} not found.")
        self.order_id = order_id


class InvalidTransition(Exception):
    """A status change violates the transition table or a lifecycle guard (409).

    Carries both statuses so clients can display what was attempted.
    ``current`` is ``None`` when the order has no status history yet.
    """

    def __init__(
        self,
        reason: str,
        current: Optional[OrderStatus] = None,
        attempted: Optional[OrderStatus] = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.current = current
        self.attempted = attempted


class InvalidOrder(Exception):
    """The order cannot be created: no lines or a non-positive total (400)."""


class OrderAccessDenied(Exception):
    """The requester is neither the order owner nor staff (403)."""
