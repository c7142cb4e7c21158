"""Order lifecycle service layer (Use Cases).

Orchestrates order creation and every status change.  All write
operations are atomic — the service defines the unit-of-work boundary.

Business rules enforced:
- The order total is computed here from the captured line prices plus the
  shipping price looked up by id; a total <= 0 is rejected.
- Amounts are charged in whole VND, which has no minor unit, so unit and
  shipping prices with a fractional part are rejected.
- An order's first status record is always PENDING_PAYMENT.
- ``transition`` is the only path that appends to the status ledger.  It
  locks the order row (``SELECT FOR UPDATE``) so the read-current /
  validate / append sequence is atomic per order.
- Cancellation additionally requires the current status to be cancellable
  (before SHIPPING).
"""

from __future__ import annotations

from decimal import Decimal
from functools import partial
from typing import TYPE_CHECKING, List, Optional, Union

import structlog
from django.db import transaction

from modules.orders.constants import INITIAL_STATUS, INITIAL_STATUS_NOTE, OrderStatus
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.exceptions import InvalidOrder, InvalidTransition, OrderNotFound
from modules.orders.state_machine import OrderStateMachine, order_state_machine
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order, OrderStatusRecord
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.shipping.repositories.interfaces import IShippingMethodRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


def _is_whole(amount: Decimal) -> bool:
    return amount == amount.to_integral_value()


class OrderLifecycleService:
    """Application service for the order lifecycle.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        shipping_repository: IShippingMethodRepository,
        state_machine: OrderStateMachine = order_state_machine,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self._order_repo = order_repository
        self._shipping_repo = shipping_repository
        self._state_machine = state_machine
        self._event_bus = event_bus or default_event_bus

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create an order with an authoritative total.

        Steps:
        1. Sum ``quantity * unit_price`` over the lines (prices captured at
           add-to-cart time).
        2. Add the shipping price fetched by ``shipping_method_id``.
        3. Reject fractional prices and totals <= 0.
        4. Persist order + lines + payment placeholder.
        5. Append the initial PENDING_PAYMENT record through ``transition``.

        Raises:
            InvalidOrder: no lines, a fractional price, or the computed total
                is not positive.
        """
        log = logger.bind(user_id=dto.user_id)
        log.info("order.creation_started", line_count=len(dto.lines))

        if not dto.lines:
            log.warning("order.rejected_empty")
            raise InvalidOrder("Order must contain at least one line.")

        lines_total = sum((line.line_total for line in dto.lines), Decimal("0.00"))
        resolved_price = self._resolve_shipping_price(dto.shipping_method_id)
        # An unknown or inactive method is dropped rather than referenced.
        shipping_method_id = dto.shipping_method_id if resolved_price is not None else None
        shipping_price = resolved_price if resolved_price is not None else Decimal("0.00")
        total = lines_total + shipping_price

        fractional = [
            line.product_name for line in dto.lines if not _is_whole(line.unit_price)
        ]
        if not _is_whole(shipping_price):
            fractional.append("shipping")
        if fractional:
            log.warning("order.rejected_fractional_price", items=fractional)
            raise InvalidOrder(
                "Prices must be whole currency units. Fractional price on: "
                + ", ".join(fractional)
            )

        if total <= 0:
            log.warning("order.rejected_total", total=str(total))
            raise InvalidOrder(
                f"Order total must be greater than 0. Calculated total: {total}"
            )

        order = self._order_repo.create(
            {
                "user_id": dto.user_id,
                "shipping_method_id": shipping_method_id,
                "shipping_price": shipping_price,
                "total": total,
                "address": dto.address,
                "notes": dto.notes,
                "lines": [
                    {
                        "product_item_id": line.product_item_id,
                        "product_name": line.product_name,
                        "quantity": line.quantity,
                        "unit_price": line.unit_price,
                    }
                    for line in dto.lines
                ],
            }
        )

        self.transition(order.id, INITIAL_STATUS, INITIAL_STATUS_NOTE)

        order.add_domain_event(OrderCreated(aggregate_id=order.id))
        self._publish(order)

        log.info(
            "order.created",
            order_id=order.id,
            lines_total=str(lines_total),
            shipping_price=str(shipping_price),
            total=str(total),
        )
        return self._order_repo.get_by_id(order.id) or order

    def transition(
        self,
        order_id: int,
        target: Union[OrderStatus, str],
        note: str = "",
        detail: Optional[str] = None,
    ) -> OrderStatusRecord:
        """Append a new status record after validating the transition.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: unknown target, first record is not
                PENDING_PAYMENT, or the state machine rejects the move.
        """
        target_status = OrderStatus.from_code(target)
        if target_status is None:
            raise InvalidTransition(f"Unknown order status: {target}.")

        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if order is None:
                raise OrderNotFound(order_id)

            log = logger.bind(order_id=order_id, new_status=target_status.value)
            current_record = self._order_repo.current_status(order_id)

            if current_record is None:
                if target_status != INITIAL_STATUS:
                    log.warning("order.invalid_initial_status")
                    raise InvalidTransition(
                        "New order must start with "
                        f"{INITIAL_STATUS.label} status, got: {target_status.label}.",
                        current=None,
                        attempted=target_status,
                    )
                old_status = None
            else:
                current_status = current_record.status_enum
                if current_status is None:
                    raise InvalidTransition(
                        f"Invalid current status: {current_record.status}.",
                        attempted=target_status,
                    )
                if not self._state_machine.is_allowed(current_status, target_status):
                    reason = self._state_machine.explain(current_status, target_status)
                    log.warning(
                        "order.invalid_transition",
                        current_status=current_status.value,
                        reason=reason,
                    )
                    raise InvalidTransition(
                        reason, current=current_status, attempted=target_status
                    )
                old_status = current_status.value

            record = self._order_repo.append_status(
                order_id,
                target_status,
                note=note or target_status.label,
                detail=detail,
            )
            order.add_domain_event(
                OrderStatusChanged(
                    aggregate_id=order_id,
                    old_status=old_status,
                    new_status=target_status.value,
                    note=record.note,
                )
            )
            self._publish(order)

        log.info("order.status_changed", old_status=old_status)
        return record

    def cancel(
        self,
        order_id: int,
        note: str = "",
        detail: Optional[str] = None,
    ) -> OrderStatusRecord:
        """Cancel an order that has not shipped yet.

        The cancellability check runs before the state machine so that
        shipped orders get a specific message.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: no history, or the order is not cancellable.
        """
        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if order is None:
                raise OrderNotFound(order_id)

            current_record = self._order_repo.current_status(order_id)
            if current_record is None:
                raise InvalidTransition(
                    "Cannot cancel order: no status history found.",
                    attempted=OrderStatus.CANCELLED,
                )

            current_status = current_record.status_enum
            if current_status is None or not current_status.is_cancellable:
                label = current_status.label if current_status else "UNKNOWN"
                logger.warning(
                    "order.cancel_not_allowed",
                    order_id=order_id,
                    current_status=current_record.status,
                )
                raise InvalidTransition(
                    f"Order cannot be cancelled. Current status: {label}. "
                    "Orders can only be cancelled before shipping.",
                    current=current_status,
                    attempted=OrderStatus.CANCELLED,
                )

            record = self.transition(
                order_id, OrderStatus.CANCELLED, note or "Order cancelled", detail
            )
            order.add_domain_event(
                OrderCancelled(aggregate_id=order_id, reason=record.note)
            )
            self._publish(order)

        logger.info(
            "order.cancelled",
            order_id=order_id,
            previous_status=current_status.value,
            reason=record.note,
        )
        return record

    def confirm(self, order_id: int, note: str = "") -> OrderStatusRecord:
        """Admin confirmation: COD orders from PENDING_PAYMENT, online from PAID."""
        return self.transition(
            order_id, OrderStatus.CONFIRMED, note, "Order confirmed by admin"
        )

    def mark_paid(self, order_id: int, transaction_id: str) -> OrderStatusRecord:
        return self.transition(
            order_id,
            OrderStatus.PAID,
            "Payment received",
            f"Transaction ID: {transaction_id}",
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def current_status(self, order_id: int) -> Optional[OrderStatusRecord]:
        return self._order_repo.current_status(order_id)

    def has_status(self, order_id: int, status: OrderStatus) -> bool:
        return self._order_repo.has_status(order_id, status)

    def history(self, order_id: int) -> List[OrderStatusRecord]:
        self.get_order(order_id)
        return self._order_repo.history(order_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_shipping_price(
        self, shipping_method_id: Optional[int]
    ) -> Optional[Decimal]:
        """Price from the shipping store; client-sent prices are never used."""
        if shipping_method_id is None:
            logger.warning("order.no_shipping_method")
            return None
        price = self._shipping_repo.price_for(shipping_method_id)
        if price is None:
            logger.warning(
                "order.shipping_price_unavailable",
                shipping_method_id=shipping_method_id,
            )
        return price

    def _publish(self, order: Order) -> None:
        """Hand collected events to the bus once the transaction commits."""
        for event in order.pull_domain_events():
            transaction.on_commit(partial(self._event_bus.publish, event))
