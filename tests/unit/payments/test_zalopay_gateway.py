"""Unit tests for the ZaloPay adapter with a mocked HTTP session."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from modules.payments.exceptions import GatewayProtocolError, GatewayTransportFailure
from modules.payments.gateway import signing
from modules.payments.gateway.interfaces import (
    GatewayCreateRequest,
    GatewayRefundRequest,
)
from modules.payments.gateway.zalopay import ZaloPayGateway

pytestmark = pytest.mark.unit


class FixedClock:
    def now(self):
        return datetime(2025, 12, 17, 7, 47, 41, 610000, tzinfo=timezone.utc)


def _response(payload=None, status_code=200, text=None):
    response = MagicMock()
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    if payload is None:
        response.json.side_effect = ValueError("no json")
        response.text = text or "<html>bad gateway</html>"
    else:
        response.json.return_value = payload
        response.text = json.dumps(payload)
    return response


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def adapter(gateway_settings, session):
    return ZaloPayGateway(gateway_settings, session=session, clock=FixedClock())


def _sent_params(session):
    _, kwargs = session.post.call_args
    return kwargs["data"]


class TestCreateOrder:
    def _request(self):
        return GatewayCreateRequest(
            correlation_id="251217_28_1765957661610",
            app_user="user5",
            app_time=1765957661610,
            amount=170,
            description="Payment for order #28",
            items=[{"itemid": "11", "itemname": "Beans", "itemprice": 50, "itemquantity": 2}],
            embed_data={"redirecturl": "https://shop.test/payment/result"},
        )

    def test_signs_with_key1_in_field_order(self, adapter, session, gateway_settings):
        session.post.return_value = _response(
            {"return_code": 1, "return_message": "OK", "zp_trans_token": "tok", "order_url": "u"}
        )

        adapter.create_order(self._request())

        params = _sent_params(session)
        expected_mac = signing.sign(
            gateway_settings.key1,
            "|".join(
                [
                    "2553",
                    "251217_28_1765957661610",
                    "user5",
                    "170",
                    "1765957661610",
                    params["embed_data"],
                    params["item"],
                ]
            ),
        )
        assert params["mac"] == expected_mac
        assert params["bank_code"] == "zalopayapp"
        assert params["callback_url"] == gateway_settings.callback_url
        assert json.loads(params["item"])[0]["itemquantity"] == 2

    def test_posts_with_timeout(self, adapter, session, gateway_settings):
        session.post.return_value = _response({"return_code": 1})

        adapter.create_order(self._request())

        args, kwargs = session.post.call_args
        assert args[0] == gateway_settings.create_url
        assert kwargs["timeout"] == gateway_settings.request_timeout_seconds

    def test_parses_result(self, adapter, session):
        session.post.return_value = _response(
            {
                "return_code": 1,
                "return_message": "Giao dịch thành công",
                "sub_return_code": 1,
                "zp_trans_token": "ACz1",
                "order_url": "https://qcgateway.test/openinapp?order=x",
            }
        )

        result = adapter.create_order(self._request())

        assert result.return_code == 1
        assert result.token == "ACz1"
        assert result.order_url.startswith("https://")

    def test_connection_error_is_transport_failure(self, adapter, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(GatewayTransportFailure):
            adapter.create_order(self._request())

    def test_timeout_is_transport_failure(self, adapter, session):
        session.post.side_effect = requests.Timeout("slow")

        with pytest.raises(GatewayTransportFailure):
            adapter.create_order(self._request())

    def test_http_error_is_transport_failure(self, adapter, session):
        session.post.return_value = _response({"return_code": 1}, status_code=502)

        with pytest.raises(GatewayTransportFailure):
            adapter.create_order(self._request())

    def test_non_json_is_protocol_error(self, adapter, session):
        session.post.return_value = _response(None)

        with pytest.raises(GatewayProtocolError):
            adapter.create_order(self._request())

    def test_missing_return_code_is_protocol_error(self, adapter, session):
        session.post.return_value = _response({"return_message": "??"})

        with pytest.raises(GatewayProtocolError):
            adapter.create_order(self._request())


class TestQueryStatus:
    def test_signs_app_id_correlation_and_key1(self, adapter, session, gateway_settings):
        session.post.return_value = _response({"return_code": 3, "return_message": "pending"})

        result = adapter.query_status("251217_28_1765957661610")

        params = _sent_params(session)
        assert params["mac"] == signing.sign(
            gateway_settings.key1, "2553|251217_28_1765957661610|test-key1"
        )
        assert result.return_code == 3
        assert result.transaction_id is None

    def test_success_carries_transaction_id(self, adapter, session):
        session.post.return_value = _response(
            {"return_code": 1, "zp_trans_id": 240000123, "amount": 170}
        )

        result = adapter.query_status("251217_28_1765957661610")

        assert result.transaction_id == "240000123"
        assert result.amount == 170


class TestRefund:
    def test_uses_legacy_returncode_keys(self, adapter, session, gateway_settings):
        session.post.return_value = _response(
            {"returncode": 1, "returnmessage": "Refund accepted", "refundid": 777}
        )
        request = GatewayRefundRequest(
            m_refund_id="251217_2553_1765957661610123",
            transaction_id="240000123",
            amount=170,
            description="Refund for order #28",
            timestamp=1765957661610,
        )

        result = adapter.refund(request)

        params = _sent_params(session)
        assert params["mac"] == signing.sign(
            gateway_settings.key1,
            "2553|240000123|170|Refund for order #28|1765957661610",
        )
        assert result.return_code == 1
        assert result.return_message == "Refund accepted"
        assert result.refund_id == "777"

    def test_query_refund_signs_with_clock_timestamp(self, adapter, session, gateway_settings):
        session.post.return_value = _response({"returncode": 2, "returnmessage": "processing"})

        result = adapter.query_refund("251217_2553_1765957661610123")

        params = _sent_params(session)
        assert params["timestamp"] == 1765957661610
        assert params["mac"] == signing.sign(
            gateway_settings.key1, "2553|251217_2553_1765957661610123|1765957661610"
        )
        assert result.return_code == 2


class TestVerifyCallback:
    def test_uses_key2(self, adapter, gateway_settings):
        data = '{"app_trans_id":"251217_28_1"}'

        assert adapter.verify_callback(data, signing.sign(gateway_settings.key2, data))
        assert not adapter.verify_callback(data, signing.sign(gateway_settings.key1, data))
