import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.orders.dtos import CreateOrderDTO, OrderLineDraftDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderLifecycleService
from modules.payments.config import GatewaySettings
from modules.payments.dtos import CallbackPayload
from modules.payments.gateway import signing
from modules.payments.gateway.interfaces import IPaymentGateway
from modules.payments.guard import IdempotencyGuard
from modules.payments.services import PaymentReconciler
from modules.shipping.models import ShippingMethod
from modules.shipping.repositories.django_repository import (
    ShippingMethodDjangoRepository,
)

User = get_user_model()

TEST_KEY1 = "test-key1"
TEST_KEY2 = "test-key2"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return User.objects.create_user(username="buyer", password="testpass123")


@pytest.fixture()
def other_user():
    return User.objects.create_user(username="stranger", password="testpass123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="admin", password="testpass123", is_staff=True
    )


@pytest.fixture()
def auth_client(user):
    """APIClient force-authenticated as the order owner."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def shipping_method():
    return ShippingMethod.objects.create(name="Standard", price=Decimal("20.00"))


@pytest.fixture()
def order_repository():
    return OrderDjangoRepository()


@pytest.fixture()
def lifecycle(order_repository):
    return OrderLifecycleService(
        order_repository=order_repository,
        shipping_repository=ShippingMethodDjangoRepository(),
    )


@pytest.fixture()
def order_draft(user, shipping_method):
    """Two lines (2 x 50 + 1 x 50) plus 20 shipping: total 170."""
    return CreateOrderDTO(
        user_id=user.id,
        lines=[
            OrderLineDraftDTO(
                product_item_id=11,
                product_name="Espresso beans 500g",
                quantity=2,
                unit_price=Decimal("50.00"),
            ),
            OrderLineDraftDTO(
                product_item_id=12,
                product_name="Paper filters",
                quantity=1,
                unit_price=Decimal("50.00"),
            ),
        ],
        shipping_method_id=shipping_method.id,
        address="12 Nguyen Hue, District 1",
    )


@pytest.fixture()
def order(lifecycle, order_draft):
    """A freshly created order in PENDING_PAYMENT."""
    return lifecycle.create_order(order_draft)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class RecordingScheduler:
    """Scheduler double that records submitted poll tasks instead of running them."""

    def __init__(self) -> None:
        self.scheduled = []

    def schedule_once(self, delay, task) -> None:
        self.scheduled.append((delay, task))

    @property
    def tasks(self):
        return [task for _, task in self.scheduled]


@pytest.fixture()
def gateway_settings():
    return GatewaySettings(
        app_id=2553,
        key1=TEST_KEY1,
        key2=TEST_KEY2,
        create_url="https://gateway.test/v2/create",
        query_url="https://gateway.test/v2/query",
        refund_url="https://gateway.test/v001/tpe/partialrefund",
        refund_status_url="https://gateway.test/v001/tpe/getpartialrefundstatus",
        callback_url="https://shop.test/api/v1/payments/callback/",
        redirect_url="https://shop.test/payment/result",
        poll_max_attempts=3,
    )


@pytest.fixture()
def scheduler():
    return RecordingScheduler()


@pytest.fixture()
def gateway():
    """Gateway double; callback verification uses real HMAC with key2."""
    mock = MagicMock(spec=IPaymentGateway)
    mock.verify_callback.side_effect = lambda data, mac: signing.verify(
        TEST_KEY2, data, mac
    )
    return mock


@pytest.fixture()
def guard():
    return IdempotencyGuard()


@pytest.fixture()
def reconciler(order_repository, lifecycle, gateway, scheduler, gateway_settings, guard):
    return PaymentReconciler(
        order_repository=order_repository,
        lifecycle=lifecycle,
        gateway=gateway,
        scheduler=scheduler,
        settings=gateway_settings,
        guard=guard,
    )


@pytest.fixture()
def make_callback():
    """Build a callback payload signed with key2 (or a given key)."""

    def _make(correlation_id, zp_trans_id=240000123, key=TEST_KEY2, **extra):
        data = json.dumps(
            {
                "app_id": 2553,
                "app_trans_id": correlation_id,
                "zp_trans_id": zp_trans_id,
                "amount": 170,
                **extra,
            }
        )
        return CallbackPayload(data=data, mac=signing.sign(key, data), type=1)

    return _make
