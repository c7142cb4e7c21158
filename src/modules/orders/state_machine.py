"""Order status state machine.

Pure validation over ``VALID_TRANSITIONS``: no I/O, no side effects and no
exceptions.  ``OrderLifecycleService`` is the only caller that acts on the
verdict; ``explain`` produces the reason surfaced to API clients on 409.
"""

from __future__ import annotations

from typing import Optional, Union

from modules.orders.constants import VALID_TRANSITIONS, OrderStatus

StatusLike = Union[OrderStatus, str, None]


def _coerce(status: StatusLike) -> Optional[OrderStatus]:
    if isinstance(status, OrderStatus):
        return status
    return OrderStatus.from_code(status)


class OrderStateMachine:
    """Validates proposed order status transitions."""

    def is_allowed(self, current: StatusLike, target: StatusLike) -> bool:
        current_status, target_status = _coerce(current), _coerce(target)
        if current_status is None or target_status is None:
            return False
        if current_status == target_status:
            return False
        return target_status in VALID_TRANSITIONS.get(current_status, frozenset())

    def allowed_next(self, current: StatusLike) -> frozenset[OrderStatus]:
        current_status = _coerce(current)
        if current_status is None:
            return frozenset()
        return VALID_TRANSITIONS.get(current_status, frozenset())

    def explain(self, current: StatusLike, target: StatusLike) -> str:
        """Human-readable reason a transition is (or would be) rejected."""
        current_status, target_status = _coerce(current), _coerce(target)
        if current_status is None or target_status is None:
            return "Invalid status: current or target status is missing or unknown."

        if current_status == target_status:
            return f"Order is already in {current_status.label} status."

        allowed = self.allowed_next(current_status)
        if not allowed:
            return (
                "Cannot change status. Order is in final state: "
                f"{current_status.label}."
            )

        if target_status in allowed:
            return (
                f"Transition from {current_status.label} to "
                f"{target_status.label} is allowed."
            )

        allowed_labels = ", ".join(
            status.label for status in sorted(allowed, key=lambda s: s.rank)
        )
        return (
            f"Cannot transition from {current_status.label} to "
            f"{target_status.label}. Allowed transitions: {allowed_labels}."
        )


order_state_machine = OrderStateMachine()
