"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
All write operations are wrapped in ``transaction.atomic()`` to ensure
the Order aggregate (Order + OrderLines + PaymentAttempt) is persisted
atomically.

Ledger appends rely on the caller holding ``select_for_update()`` on the
order row (see ``get_for_update``); the ``(order, sequence)`` unique
constraint is the backstop if that contract is ever broken.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.db import transaction
from django.db.models import Max

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderLine, OrderStatusRecord, PaymentAttempt
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            user_id=data["user_id"],
            shipping_method_id=data.get("shipping_method_id"),
            shipping_price=data.get("shipping_price", Decimal("0.00")),
            total=data["total"],
            address=data.get("address", ""),
            notes=data.get("notes", ""),
        )
        order.save()

        lines = data.get("lines", [])
        for line_data in lines:
            OrderLine(
                order=order,
                product_item_id=line_data["product_item_id"],
                product_name=line_data["product_name"],
                quantity=line_data["quantity"],
                unit_price=line_data["unit_price"],
            ).save()

        PaymentAttempt.objects.create(order=order)

        logger.info(
            "order.persisted",
            order_id=order.id,
            line_count=len(lines),
            total=str(order.total),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: int) -> Optional[Order]:
        """Retrieve an order with eager-loaded lines and ledger.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_related("payment", "shipping_method")
                .prefetch_related("lines", "status_records")
                .filter(id=id)
                .first()
            )
        except (TypeError, ValueError):
            return None

    def get_for_update(self, id: int) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic``.  The lock serialises
        every ledger append on the same order.
        """
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (TypeError, ValueError):
            return None

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        entity.save()
        logger.info("order.saved", order_id=entity.id)
        return entity

    # ------------------------------------------------------------------
    # Status ledger
    # ------------------------------------------------------------------

    def append_status(
        self,
        order_id: int,
        status: OrderStatus,
        note: str = "",
        detail: Optional[str] = None,
    ) -> OrderStatusRecord:
        last_sequence = OrderStatusRecord.objects.filter(order_id=order_id).aggregate(
            last=Max("sequence")
        )["last"]
        record = OrderStatusRecord(
            order_id=order_id,
            sequence=(last_sequence or 0) + 1,
            status=status,
            note=note,
            detail=detail,
        )
        record.save()

        logger.info(
            "order.status_appended",
            order_id=order_id,
            status=str(status),
            sequence=record.sequence,
        )
        return record

    def current_status(self, order_id: int) -> Optional[OrderStatusRecord]:
        return (
            OrderStatusRecord.objects.filter(order_id=order_id)
            .order_by("-created_at", "-sequence")
            .first()
        )

    def has_status(self, order_id: int, status: OrderStatus) -> bool:
        return OrderStatusRecord.objects.filter(order_id=order_id, status=status).exists()

    def history(self, order_id: int) -> List[OrderStatusRecord]:
        return list(
            OrderStatusRecord.objects.filter(order_id=order_id).order_by(
                "created_at", "sequence"
            )
        )

    # ------------------------------------------------------------------
    # Payment attempt
    # ------------------------------------------------------------------

    def get_payment(self, order_id: int) -> Optional[PaymentAttempt]:
        return PaymentAttempt.objects.filter(order_id=order_id).first()

    def get_payment_for_update(self, order_id: int) -> Optional[PaymentAttempt]:
        return PaymentAttempt.objects.select_for_update().filter(order_id=order_id).first()

    def save_payment(self, payment: PaymentAttempt) -> PaymentAttempt:
        payment.save()
        logger.info(
            "payment.attempt_saved",
            order_id=payment.order_id,
            status=payment.status,
            correlation_id=payment.correlation_id,
        )
        return payment
