"""Order repository interface (the order store).

Extends ``IRepository[Order, int]`` with the ledger operations the
lifecycle service needs and the payment-attempt accessors used by the
payment reconciler.  The Service Layer depends exclusively on this
contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.constants import OrderStatus
    from modules.orders.models import Order, OrderStatusRecord, PaymentAttempt


class IOrderRepository(IRepository["Order", int]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderLine children, the append-only
    OrderStatusRecord ledger and the PaymentAttempt.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its lines and a PENDING payment placeholder.

        ``data`` keys: ``user_id``, ``shipping_method_id``, ``shipping_price``,
        ``total``, ``lines`` (dicts with ``product_item_id``, ``product_name``,
        ``quantity``, ``unit_price``), optional ``address`` and ``notes``.
        """

    @abstractmethod
    def get_for_update(self, id: int) -> Optional[Order]:
        """Retrieve an order holding a row lock until the transaction ends."""

    @abstractmethod
    def append_status(
        self,
        order_id: int,
        status: OrderStatus,
        note: str = "",
        detail: Optional[str] = None,
    ) -> OrderStatusRecord:
        """Append a record to the ledger.  Callers must hold the order lock."""

    @abstractmethod
    def current_status(self, order_id: int) -> Optional[OrderStatusRecord]:
        """Latest record by ``created_at`` (ties: highest ``sequence``)."""

    @abstractmethod
    def has_status(self, order_id: int, status: OrderStatus) -> bool:
        """Whether any record of ``status`` exists in the order's ledger."""

    @abstractmethod
    def history(self, order_id: int) -> List[OrderStatusRecord]:
        """Full ledger, oldest first."""

    @abstractmethod
    def get_payment(self, order_id: int) -> Optional[PaymentAttempt]:
        """The order's payment attempt, if any."""

    @abstractmethod
    def get_payment_for_update(self, order_id: int) -> Optional[PaymentAttempt]:
        """The order's payment attempt, row-locked."""

    @abstractmethod
    def save_payment(self, payment: PaymentAttempt) -> PaymentAttempt:
        """Persist payment attempt changes."""
