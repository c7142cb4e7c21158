"""Shipping repositories package."""

from modules.shipping.repositories.django_repository import (
    ShippingMethodDjangoRepository,
)
from modules.shipping.repositories.interfaces import IShippingMethodRepository

__all__ = ["IShippingMethodRepository", "ShippingMethodDjangoRepository"]
