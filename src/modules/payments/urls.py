"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments import views

urlpatterns = [
    path(
        "payments/create-order/",
        views.create_gateway_order,
        name="payment-create-order",
    ),
    path("payments/verify/", views.verify_payment, name="payment-verify"),
    path(
        "payments/webhook/",
        views.PaymentWebhookView.as_view(),
        name="payment-webhook",
    ),
    path("payments/refund/", views.refund_payment, name="payment-refund"),
    path(
        "payments/status/<uuid:order_id>/",
        views.payment_status,
        name="payment-status",
    ),
]
