"""Order access policy.

An order may be managed (read, refunded, cancelled) by its owner or by a
staff user.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from modules.orders.exceptions import OrderAccessDenied

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class OrderAccessPolicy:
    def can_manage(self, order: Order, requester: Any) -> bool:
        if requester is None or not getattr(requester, "is_authenticated", False):
            return False
        if getattr(requester, "is_staff", False):
            return True
        return order.user_id == requester.pk

    def ensure_can_manage(self, order: Order, requester: Any) -> None:
        """Raise ``OrderAccessDenied`` unless ``requester`` owns ``order`` or is staff."""
        if not self.can_manage(order, requester):
            logger.warning(
                "order.access_denied",
                order_id=order.id,
                requester_id=getattr(requester, "pk", None),
            )
            raise OrderAccessDenied(
                f"You do not have permission to manage order {order.id}."
            )


order_access_policy = OrderAccessPolicy()
