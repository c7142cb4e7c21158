"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``OrderLineDraftDTO``: one cart line with its captured unit price.
- ``CreateOrderDTO``: checkout request.  Carries no total and no shipping
  price: both are resolved server-side.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class OrderLineDraftDTO(BaseModel):
    """A cart line.  ``unit_price`` is the price captured when the item was
    added to the cart, not a live catalogue lookup."""

    model_config = ConfigDict(frozen=True)

    product_item_id: int
    product_name: str
    quantity: int
    unit_price: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price cannot be negative.")
        return v

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CreateOrderDTO(BaseModel):
    """Checkout request.

    An empty ``lines`` list is accepted here and rejected by the service
    with ``InvalidOrder`` so both "no lines" and "zero total" surface the
    same way.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    lines: List[OrderLineDraftDTO] = []
    shipping_method_id: Optional[int] = None
    address: str = ""
    notes: str = ""

