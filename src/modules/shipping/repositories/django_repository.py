"""Django ORM implementation of the shipping method repository."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import structlog

from modules.shipping.models import ShippingMethod
from modules.shipping.repositories.interfaces import IShippingMethodRepository

logger = structlog.get_logger(__name__)


class ShippingMethodDjangoRepository(IShippingMethodRepository):
    def get_by_id(self, id: int) -> Optional[ShippingMethod]:
        return ShippingMethod.objects.filter(id=id).first()

    def save(self, entity: ShippingMethod) -> ShippingMethod:
        entity.save()
        return entity

    def price_for(self, shipping_method_id: int) -> Optional[Decimal]:
        price = (
            ShippingMethod.objects.filter(id=shipping_method_id, is_active=True)
            .values_list("price", flat=True)
            .first()
        )
        if price is None:
            logger.warning(
                "shipping.price_not_found", shipping_method_id=shipping_method_id
            )
        return price
