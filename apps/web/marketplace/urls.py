"""
URL routing for Marketplace webhooks.
"""

from django.urls import path

from apps.web.marketplace import views

app_name = "marketplace"

urlpatterns = [
    path("orders", views.order_webhook, name="order-webhook"),
    path("orders/<str:vendor_code>", views.order_webhook, name="order-webhook-vendor"),
    path("catalog-status", views.catalog_status_webhook, name="catalog-status"),
    path("health", views.health, name="health"),
]
