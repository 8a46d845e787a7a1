"""
URL configuration for MenuSync.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    # Inbound Marketplace webhooks
    path("marketplace/webhooks/", include("apps.web.marketplace.urls")),
]
