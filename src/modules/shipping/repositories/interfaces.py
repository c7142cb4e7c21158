"""Shipping method repository interface (ShippingPriceLookup)."""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.shipping.models import ShippingMethod


class IShippingMethodRepository(IRepository["ShippingMethod", int]):
    @abstractmethod
    def price_for(self, shipping_method_id: int) -> Optional[Decimal]:
        """Return the current price of an active shipping method.

        ``None`` when the method does not exist or is inactive.
        """
