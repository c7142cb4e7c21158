"""ZaloPay gateway adapter.

Form-encoded POSTs over a shared ``requests.Session`` with a per-call
timeout.  Every mutating request carries an HMAC-SHA256 ``mac`` signed
with ``key1``; callbacks are authenticated with ``key2``.

MAC field orders:
- create:        app_id|app_trans_id|app_user|amount|app_time|embed_data|item
- query:         app_id|app_trans_id|key1
- refund:        app_id|zp_trans_id|amount|description|timestamp
- refund status: app_id|m_refund_id|timestamp
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import requests
import structlog

from modules.payments.config import GatewaySettings
from modules.payments.correlation import epoch_millis
from modules.payments.exceptions import GatewayProtocolError, GatewayTransportFailure
from modules.payments.gateway import signing
from modules.payments.gateway.interfaces import (
    GatewayCreateRequest,
    GatewayCreateResult,
    GatewayRefundRequest,
    GatewayRefundResult,
    GatewayStatusResult,
    IPaymentGateway,
)
from shared.domain.clock import IClock
from shared.infrastructure.clock import system_clock

logger = structlog.get_logger(__name__)


def _return_code(payload: Mapping[str, Any]) -> int:
    """``return_code`` (v2 endpoints) or ``returncode`` (v001 endpoints).

    Raises:
        GatewayProtocolError: neither key carries an integer.
    """
    for key in ("return_code", "returncode"):
        value = payload.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            raise GatewayProtocolError(f"Non-integer {key}: {value!r}") from None
    raise GatewayProtocolError("Gateway response has no return code")


def _return_message(payload: Mapping[str, Any]) -> str:
    return str(payload.get("return_message") or payload.get("returnmessage") or "")


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ZaloPayGateway(IPaymentGateway):
    def __init__(
        self,
        settings: GatewaySettings,
        session: Optional[requests.Session] = None,
        clock: IClock = system_clock,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._clock = clock

    # ------------------------------------------------------------------
    # IPaymentGateway
    # ------------------------------------------------------------------

    def create_order(self, request: GatewayCreateRequest) -> GatewayCreateResult:
        s = self._settings
        item = json.dumps(request.items, separators=(",", ":"))
        embed_data = json.dumps(request.embed_data, separators=(",", ":"))
        params = {
            "app_id": s.app_id,
            "app_user": request.app_user,
            "app_trans_id": request.correlation_id,
            "app_time": request.app_time,
            "amount": request.amount,
            "item": item,
            "embed_data": embed_data,
            "description": request.description,
            "bank_code": s.bank_code,
            "callback_url": s.callback_url,
        }
        params["mac"] = signing.sign(
            s.key1,
            signing.join_fields(
                s.app_id,
                request.correlation_id,
                request.app_user,
                request.amount,
                request.app_time,
                embed_data,
                item,
            ),
        )

        payload = self._post(s.create_url, params, operation="create_order")
        return GatewayCreateResult(
            return_code=_return_code(payload),
            return_message=_return_message(payload),
            sub_return_code=_optional_int(payload.get("sub_return_code")),
            sub_return_message=payload.get("sub_return_message"),
            order_url=payload.get("order_url"),
            order_token=payload.get("order_token"),
            zp_trans_token=payload.get("zp_trans_token"),
        )

    def query_status(self, correlation_id: str) -> GatewayStatusResult:
        s = self._settings
        params = {
            "app_id": s.app_id,
            "app_trans_id": correlation_id,
            "mac": signing.sign(
                s.key1, signing.join_fields(s.app_id, correlation_id, s.key1)
            ),
        }
        payload = self._post(s.query_url, params, operation="query_status")
        zp_trans_id = payload.get("zp_trans_id")
        return GatewayStatusResult(
            return_code=_return_code(payload),
            return_message=_return_message(payload),
            transaction_id=str(zp_trans_id) if zp_trans_id else None,
            amount=_optional_int(payload.get("amount")),
        )

    def refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        s = self._settings
        params = {
            "app_id": s.app_id,
            "zp_trans_id": request.transaction_id,
            "m_refund_id": request.m_refund_id,
            "timestamp": request.timestamp,
            "amount": request.amount,
            "description": request.description,
        }
        params["mac"] = signing.sign(
            s.key1,
            signing.join_fields(
                s.app_id,
                request.transaction_id,
                request.amount,
                request.description,
                request.timestamp,
            ),
        )
        payload = self._post(s.refund_url, params, operation="refund")
        refund_id = payload.get("refundid") or payload.get("refund_id")
        return GatewayRefundResult(
            return_code=_return_code(payload),
            return_message=_return_message(payload),
            refund_id=str(refund_id) if refund_id else None,
        )

    def query_refund(self, m_refund_id: str) -> GatewayRefundResult:
        s = self._settings
        timestamp = epoch_millis(self._clock.now())
        params = {
            "appid": s.app_id,
            "mrefundid": m_refund_id,
            "timestamp": timestamp,
            "mac": signing.sign(
                s.key1, signing.join_fields(s.app_id, m_refund_id, timestamp)
            ),
        }
        payload = self._post(s.refund_status_url, params, operation="query_refund")
        return GatewayRefundResult(
            return_code=_return_code(payload),
            return_message=_return_message(payload),
        )

    def verify_callback(self, data: str, mac: str) -> bool:
        return signing.verify(self._settings.key2, data, mac)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(
        self, url: str, params: Dict[str, Any], operation: str
    ) -> Dict[str, Any]:
        """POST form params and decode the JSON object body.

        Raises:
            GatewayTransportFailure: connection error, timeout, non-2xx.
            GatewayProtocolError: body is not a JSON object.
        """
        log = logger.bind(operation=operation, url=url)
        try:
            response = self._session.post(
                url, data=params, timeout=self._settings.request_timeout_seconds
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            log.warning("gateway.transport_failure", error=str(exc))
            raise GatewayTransportFailure(f"{operation} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            log.warning("gateway.invalid_json", body=response.text[:500])
            raise GatewayProtocolError(f"{operation}: response is not JSON") from exc

        if not isinstance(payload, dict):
            raise GatewayProtocolError(f"{operation}: expected a JSON object")

        log.info(
            "gateway.response",
            return_code=payload.get("return_code", payload.get("returncode")),
        )
        return payload
