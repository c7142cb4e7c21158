"""Wiring of the payment reconciler with its production collaborators."""

from __future__ import annotations

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderLifecycleService
from modules.payments.config import GatewaySettings
from modules.payments.gateway.zalopay import ZaloPayGateway
from modules.payments.scheduling import CeleryScheduler
from modules.payments.services import PaymentReconciler
from modules.shipping.repositories.django_repository import (
    ShippingMethodDjangoRepository,
)


def build_payment_reconciler() -> PaymentReconciler:
    settings = GatewaySettings.from_django()
    order_repository = OrderDjangoRepository()
    return PaymentReconciler(
        order_repository=order_repository,
        lifecycle=OrderLifecycleService(
            order_repository=order_repository,
            shipping_repository=ShippingMethodDjangoRepository(),
        ),
        gateway=ZaloPayGateway(settings),
        scheduler=CeleryScheduler(),
        settings=settings,
    )
