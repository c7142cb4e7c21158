"""Shipping method catalogue.

Only the price matters to the order core: the order total always uses the
price stored here, looked up by id at checkout time.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import TimestampedModel


class ShippingMethod(TimestampedModel):
    name: models.CharField = models.CharField(max_length=100, unique=True)
    price: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    is_active: models.BooleanField = models.BooleanField(default=True)

    class Meta:
        db_table = "shipping_methods"
        ordering = ["price", "name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.price})"
