"""Payment API views.

Thin HTTP layer over ``PaymentReconciler``.  Gateway failures arrive as
result bodies (HTTP 200 with ``success`` / ``return_code``); only
structural errors are mapped to 4xx here.
"""

from __future__ import annotations

import structlog
from rest_framework import serializers, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ViewSet

from modules.orders.exceptions import OrderAccessDenied, OrderNotFound
from modules.payments.dtos import CallbackPayload
from modules.payments.exceptions import (
    CallbackVerificationFailed,
    MalformedCorrelationId,
    RefundNotAllowed,
)
from modules.payments.factory import build_payment_reconciler

logger = structlog.get_logger(__name__)


class CallbackSerializer(serializers.Serializer):
    data = serializers.CharField()
    mac = serializers.CharField()
    type = serializers.IntegerField(required=False, allow_null=True)


def _order_id(pk: str | None) -> int:
    try:
        return int(pk)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise OrderNotFound(pk) from None


class PaymentViewSet(ViewSet):
    """Authenticated payment operations keyed by order id."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._reconciler = build_payment_reconciler()

    @action(detail=True, methods=["post"])
    def initiate(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payments/{order_id}/initiate/"""
        try:
            result = self._reconciler.initiate(_order_id(pk), requester=request.user)
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        except OrderAccessDenied as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        return Response(result.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payments/{order_id}/refund/"""
        try:
            result = self._reconciler.refund(_order_id(pk), request.user)
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        except OrderAccessDenied as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        except RefundNotAllowed as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            {**result.model_dump(mode="json"), "success": result.success}
        )

    @action(detail=False, methods=["get"])
    def result(self, request: Request) -> Response:
        """GET /api/v1/payments/result/?apptransid=..."""
        correlation_id = request.query_params.get("apptransid", "")
        try:
            view = self._reconciler.payment_status(correlation_id)
        except MalformedCorrelationId as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(view.model_dump(mode="json"))

    @action(detail=False, methods=["get"], url_path="refund-status")
    def refund_status(self, request: Request) -> Response:
        """GET /api/v1/payments/refund-status/?m_refund_id=..."""
        m_refund_id = request.query_params.get("m_refund_id")
        if not m_refund_id:
            return Response(
                {"detail": "Query parameter 'm_refund_id' is required."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        result = self._reconciler.refund_status(m_refund_id)
        return Response(result.model_dump(mode="json"))


class PaymentCallbackView(APIView):
    """POST /api/v1/payments/callback/

    Public endpoint called by the gateway.  Authenticity is established by
    the payload MAC, not by a user session.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> Response:
        serializer = CallbackSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning("payment.callback_invalid_body", errors=serializer.errors)
            return Response(
                {"return_code": -1, "return_message": "invalid callback body"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        payload = CallbackPayload(**serializer.validated_data)
        reconciler = build_payment_reconciler()
        try:
            ack = reconciler.handle_callback(payload)
        except CallbackVerificationFailed:
            return Response(
                {"return_code": -1, "return_message": "mac not equal"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except MalformedCorrelationId as exc:
            return Response(
                {"return_code": -1, "return_message": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(ack.model_dump())
