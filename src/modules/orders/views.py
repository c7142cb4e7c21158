"""Order API views.

Exposes the ``OrderLifecycleService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes — the view never swallows generic exceptions.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.orders.dtos import CreateOrderDTO, OrderLineDraftDTO
from modules.orders.exceptions import (
    InvalidOrder,
    InvalidTransition,
    OrderAccessDenied,
    OrderNotFound,
)
from modules.orders.models import Order
from modules.orders.policies import order_access_policy
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelSerializer,
    CreateOrderSerializer,
    OrderSerializer,
    StatusRecordSerializer,
    TransitionSerializer,
)
from modules.orders.services import OrderLifecycleService
from modules.shipping.repositories.django_repository import (
    ShippingMethodDjangoRepository,
)


def _not_found() -> Response:
    return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)


def _invalid_transition(exc: InvalidTransition) -> Response:
    return Response(
        {
            "detail": exc.reason,
            "current_status": exc.current.value if exc.current else None,
            "attempted_status": exc.attempted.value if exc.attempted else None,
        },
        status=status.HTTP_409_CONFLICT,
    )


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderLifecycleService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet`` — all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.none()

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderLifecycleService(
            order_repository=OrderDjangoRepository(),
            shipping_repository=ShippingMethodDjangoRepository(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        self.throttle_scope = "order_creation" if self.action == "create" else None
        return super().get_throttles()

    def _get_managed_order(self, request: Request, pk: str | None) -> Order:
        """Load the order and check the requester may see it.

        Raises:
            OrderNotFound, OrderAccessDenied
        """
        try:
            order_id = int(pk) if pk is not None else None
        except ValueError:
            order_id = None
        if order_id is None:
            raise OrderNotFound(pk)
        order = self._service.get_order(order_id)
        order_access_policy.ensure_can_manage(order, request.user)
        return order

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        The owner is the authenticated user; totals are computed server-side.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            user_id=request.user.pk,
            lines=[
                OrderLineDraftDTO(
                    product_item_id=line["product_item_id"],
                    product_name=line["product_name"],
                    quantity=line["quantity"],
                    unit_price=line["unit_price"],
                )
                for line in data["lines"]
            ],
            shipping_method_id=data.get("shipping_method_id"),
            address=data.get("address", ""),
            notes=data.get("notes", ""),
        )

        try:
            order = self._service.create_order(dto)
        except InvalidOrder as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        out = OrderSerializer(order)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Retrieve / History
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._get_managed_order(request, pk)
        except OrderNotFound:
            return _not_found()
        except OrderAccessDenied as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)

        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/history/ — full ledger, oldest first."""
        try:
            order = self._get_managed_order(request, pk)
        except OrderNotFound:
            return _not_found()
        except OrderAccessDenied as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)

        records = self._service.history(order.id)
        return Response(StatusRecordSerializer(records, many=True).data)

    # ------------------------------------------------------------------
    # Status transition (staff)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="status")
    def transition(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/status/

        Staff-only.  Cancellations should use ``/cancel/`` so the
        cancellability rule applies.
        """
        if not request.user.is_staff:
            return Response(
                {"detail": "Only staff can change order status."},
                status=status.HTTP_403_FORBIDDEN,
            )

        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = self._get_managed_order(request, pk)
            record = self._service.transition(
                order.id, data["status"], data["note"], data["detail"]
            )
        except OrderNotFound:
            return _not_found()
        except InvalidTransition as exc:
            return _invalid_transition(exc)

        return Response(StatusRecordSerializer(record).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Allowed for the owner or staff while the order has not shipped.
        """
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._get_managed_order(request, pk)
            record = self._service.cancel(order.id, serializer.validated_data["note"])
        except OrderNotFound:
            return _not_found()
        except OrderAccessDenied as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        except InvalidTransition as exc:
            return _invalid_transition(exc)

        return Response(StatusRecordSerializer(record).data)
