"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            f"Order {event.aggregate_id} created, awaiting payment",
            order_id=event.aggregate_id,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            f"Order {event.aggregate_id} moved {event.old_status} -> {event.new_status}",
            order_id=event.aggregate_id,
            old_status=event.old_status,
            new_status=event.new_status,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            f"Order {event.aggregate_id} cancelled",
            order_id=event.aggregate_id,
            reason=event.reason,
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_cancelled_handler = OrderCancelledHandler()
