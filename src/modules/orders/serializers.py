"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderLine, OrderStatusRecord

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderLineSerializer(serializers.Serializer):
    """Validates a single cart line with its captured unit price."""

    product_item_id = serializers.IntegerField(min_value=1)
    product_name = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the checkout payload.  There is no total or shipping price
    field: both are computed server-side."""

    lines = CreateOrderLineSerializer(many=True, allow_empty=False)
    shipping_method_id = serializers.IntegerField(required=False, allow_null=True)
    address = serializers.CharField(required=False, default="", allow_blank=True)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, default="", allow_blank=True)
    detail = serializers.CharField(required=False, allow_null=True, default=None)


class CancelSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLine
        fields = [
            "id",
            "product_item_id",
            "product_name",
            "quantity",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class StatusRecordSerializer(serializers.ModelSerializer):
    """Read serializer for ledger records."""

    label = serializers.SerializerMethodField()

    class Meta:
        model = OrderStatusRecord
        fields = [
            "id",
            "sequence",
            "status",
            "label",
            "note",
            "detail",
            "created_at",
        ]
        read_only_fields = fields

    def get_label(self, obj: OrderStatusRecord) -> str:
        status = obj.status_enum
        return status.label if status else obj.status


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested lines and history.

    ``status`` is the newest ledger record; with ``status_records``
    prefetched this costs no extra query.
    """

    lines = OrderLineSerializer(many=True, read_only=True)
    status_history = StatusRecordSerializer(
        source="status_records", many=True, read_only=True
    )
    status = serializers.SerializerMethodField()
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "user_id",
            "status",
            "payment_status",
            "shipping_method_id",
            "shipping_price",
            "total",
            "address",
            "notes",
            "created_at",
            "updated_at",
            "lines",
            "status_history",
        ]
        read_only_fields = fields

    def get_status(self, obj: Order) -> str | None:
        records = list(obj.status_records.all())
        return records[-1].status if records else None

    def get_payment_status(self, obj: Order) -> str | None:
        payment = getattr(obj, "payment", None)
        return payment.status if payment else None
