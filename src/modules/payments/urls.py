"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import SimpleRouter

from modules.payments.views import PaymentCallbackView, PaymentViewSet

router = SimpleRouter(trailing_slash=True)
router.register("payments", PaymentViewSet, basename="payment")

urlpatterns = [
    path("payments/callback/", PaymentCallbackView.as_view(), name="payment-callback"),
    *router.urls,
]
