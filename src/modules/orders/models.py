"""Order, OrderLine, OrderStatusRecord and PaymentAttempt models.

Business rules implemented:
- ``Order.total`` is always computed server-side (line totals + shipping);
  callers never supply it.
- ``OrderLine`` snapshots the unit price captured at add-to-cart time;
  ``line_total`` is always ``quantity * unit_price`` (calculated on save).
- ``OrderStatusRecord`` is append-only: status changes are new rows, never
  edits.  The latest record (``created_at``, then ``sequence``) is the
  order's current status.
- Each order owns exactly one ``PaymentAttempt``, created as a PENDING
  placeholder together with the order.
- Orders are never deleted; cancellation and return are status values.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel, TimestampedModel
from modules.orders.constants import OrderStatus, PaymentStatus
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, TimestampedModel):
    """Order aggregate root.

    Keeps Django's integer ``id``: it is embedded in the payment gateway
    correlation id (``{yyMMdd}_{orderId}_{epochMillis}``).  Money columns
    keep two decimal places, but the service only accepts whole VND so
    the gateway amount ``int(total)`` is exact.
    """

    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="shop_orders",
    )
    shipping_method: models.ForeignKey = models.ForeignKey(
        "shipping.ShippingMethod",
        on_delete=models.PROTECT,
        related_name="orders",
        null=True,
        blank=True,
    )
    shipping_price: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    total: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    address: models.TextField = models.TextField(blank=True, default="")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "shop_orders"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Order #{self.pk} ({self.total})"


class OrderLine(BaseModel):
    """Line item with a price snapshot.

    ``product_item_id`` references the catalogue, which lives outside this
    service; ``product_name`` is kept for the gateway item manifest.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="lines",
    )
    product_item_id: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    product_name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
    )
    line_total: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "shop_order_lines"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_lines_quantity_positive",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.unit_price is None:
            raise ValidationError({"unit_price": "Unit price is required."})
        self.line_total = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} ({self.line_total})"


class OrderStatusRecord(BaseModel):
    """Immutable entry of an order's status ledger.

    ``sequence`` is assigned under the order row lock and is unique per
    order, so it also breaks ``created_at`` ties deterministically.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="status_records",
    )
    sequence: models.PositiveIntegerField = models.PositiveIntegerField()
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    note: models.TextField = models.TextField(blank=True, default="")
    detail: models.TextField = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01

    class Meta:
        db_table = "shop_order_status_records"
        ordering = ["created_at", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"],
                name="status_records_order_sequence_unique",
            ),
        ]
        indexes = [
            models.Index(
                fields=["order", "-created_at", "-sequence"],
                name="osr_order_latest_idx",
            ),
        ]

    @property
    def status_enum(self) -> Optional[OrderStatus]:
        return OrderStatus.from_code(self.status)

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Order status records are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise ValidationError("Order status records cannot be deleted.")

    def __str__(self) -> str:
        return f"Order #{self.order_id} [{self.sequence}] {self.status}"


class PaymentAttempt(BaseModel):
    """Gateway transaction bookkeeping for one order.

    ``gateway_token`` is the gateway's ``zp_trans_token`` returned on create;
    ``gateway_transaction_id`` the ``zp_trans_id`` reported on success and
    needed for refunds.
    """

    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    correlation_id: models.CharField = models.CharField(
        max_length=40,
        unique=True,
        null=True,
        blank=True,
    )
    gateway_token: models.CharField = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )
    gateway_transaction_id: models.CharField = models.CharField(
        max_length=64,
        blank=True,
        default="",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    class Meta:
        db_table = "shop_order_payments"

    @property
    def is_active(self) -> bool:
        """A gateway transaction was opened and is not resolved yet."""
        return bool(self.gateway_token.strip()) and self.status == PaymentStatus.PENDING

    def __str__(self) -> str:
        return f"Payment for order #{self.order_id} [{self.status}]"
