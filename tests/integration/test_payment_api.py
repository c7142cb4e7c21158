"""Integration tests for the payment endpoints.

The reconciler is built from the test fixtures (mocked gateway, recording
scheduler) and injected in place of the production wiring.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from modules.orders.constants import OrderStatus
from modules.payments.gateway.interfaces import (
    GatewayCreateResult,
    GatewayRefundResult,
)

pytestmark = pytest.mark.integration

CALLBACK_URL = "/api/v1/payments/callback/"


@pytest.fixture(autouse=True)
def wired(reconciler):
    with patch(
        "modules.payments.views.build_payment_reconciler", return_value=reconciler
    ):
        yield reconciler


@pytest.fixture()
def created(gateway):
    gateway.create_order.return_value = GatewayCreateResult(
        return_code=1,
        return_message="Giao dịch thành công",
        order_url="https://qcgateway.test/openinapp?order=x",
        zp_trans_token="ACz1token",
    )
    return gateway


@pytest.fixture()
def correlation_id(reconciler, created, order):
    return reconciler.initiate(order.id).correlation_id


def _callback_body(payload):
    return {"data": payload.data, "mac": payload.mac, "type": payload.type}


class TestInitiate:
    def test_owner_gets_payment_url(self, auth_client, created, order):
        response = auth_client.post(f"/api/v1/payments/{order.id}/initiate/")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["return_code"] == 1
        assert data["order_id"] == order.id
        assert data["order_url"] == "https://qcgateway.test/openinapp?order=x"
        assert data["correlation_id"].split("_")[1] == str(order.id)

    def test_gateway_decline_is_reported_in_body(self, auth_client, gateway, order):
        gateway.create_order.return_value = GatewayCreateResult(
            return_code=2, return_message="Giao dịch thất bại"
        )

        response = auth_client.post(f"/api/v1/payments/{order.id}/initiate/")

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["return_code"] == 2

    def test_other_user_gets_403(self, api_client, other_user, created, order):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(f"/api/v1/payments/{order.id}/initiate/")

        assert response.status_code == 403
        created.create_order.assert_not_called()

    def test_missing_order_returns_404(self, auth_client, created):
        response = auth_client.post("/api/v1/payments/424242/initiate/")

        assert response.status_code == 404

    def test_unauthenticated_returns_401(self, api_client, order):
        response = api_client.post(f"/api/v1/payments/{order.id}/initiate/")

        assert response.status_code == 401


class TestCallback:
    def test_valid_callback_is_acknowledged(
        self, api_client, correlation_id, order, make_callback, lifecycle
    ):
        response = api_client.post(
            CALLBACK_URL, _callback_body(make_callback(correlation_id)), format="json"
        )

        assert response.status_code == 200
        assert response.json() == {"return_code": 1, "return_message": "success"}
        assert lifecycle.current_status(order.id).status == OrderStatus.PAID

    def test_redelivery_is_acknowledged_without_second_record(
        self, api_client, correlation_id, order, make_callback, lifecycle
    ):
        body = _callback_body(make_callback(correlation_id))

        api_client.post(CALLBACK_URL, body, format="json")
        response = api_client.post(CALLBACK_URL, body, format="json")

        assert response.json() == {
            "return_code": 1,
            "return_message": "success (already paid)",
        }
        statuses = [r.status for r in lifecycle.history(order.id)]
        assert statuses.count(OrderStatus.PAID) == 1

    def test_bad_mac_returns_400(
        self, api_client, correlation_id, order, make_callback, lifecycle
    ):
        body = _callback_body(make_callback(correlation_id, key="forged"))

        response = api_client.post(CALLBACK_URL, body, format="json")

        assert response.status_code == 400
        assert response.json() == {"return_code": -1, "return_message": "mac not equal"}
        assert lifecycle.current_status(order.id).status == OrderStatus.PENDING_PAYMENT

    def test_missing_fields_return_400(self, api_client):
        response = api_client.post(CALLBACK_URL, {"data": "{}"}, format="json")

        assert response.status_code == 400
        assert response.json()["return_code"] == -1

    def test_malformed_correlation_id_returns_400(self, api_client, make_callback):
        body = _callback_body(make_callback("not-a-correlation-id"))

        response = api_client.post(CALLBACK_URL, body, format="json")

        assert response.status_code == 400


class TestResult:
    def test_processing_then_paid(self, auth_client, correlation_id, make_callback, reconciler):
        url = f"/api/v1/payments/result/?apptransid={correlation_id}"

        assert auth_client.get(url).json()["payment_status"] == "PROCESSING"

        reconciler.handle_callback(make_callback(correlation_id))
        data = auth_client.get(url).json()

        assert data["payment_status"] == "PAID"
        assert data["total"] == "170.00"

    def test_malformed_id_returns_400(self, auth_client):
        response = auth_client.get("/api/v1/payments/result/?apptransid=oops")

        assert response.status_code == 400

    def test_unknown_order_returns_404(self, auth_client):
        response = auth_client.get(
            "/api/v1/payments/result/?apptransid=251217_424242_1765957661610"
        )

        assert response.status_code == 404


class TestRefund:
    def test_unpaid_order_returns_400(self, auth_client, order):
        response = auth_client.post(f"/api/v1/payments/{order.id}/refund/")

        assert response.status_code == 400
        assert "has not been paid yet" in response.json()["detail"]

    def test_paid_order_is_refunded(
        self, auth_client, gateway, correlation_id, order, make_callback, reconciler
    ):
        reconciler.handle_callback(make_callback(correlation_id))
        gateway.refund.return_value = GatewayRefundResult(
            return_code=1, return_message="Refund accepted", refund_id="777"
        )

        response = auth_client.post(f"/api/v1/payments/{order.id}/refund/")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["refund_id"] == "777"
        assert data["m_refund_id"]

    def test_refund_status_requires_parameter(self, auth_client):
        response = auth_client.get("/api/v1/payments/refund-status/")

        assert response.status_code == 400

    def test_refund_status(self, auth_client, gateway):
        gateway.query_refund.return_value = GatewayRefundResult(
            return_code=3, return_message="Refund is processing"
        )

        response = auth_client.get(
            "/api/v1/payments/refund-status/?m_refund_id=251217_2553_1765957661610123"
        )

        assert response.status_code == 200
        assert response.json()["return_code"] == 3
