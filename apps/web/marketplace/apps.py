"""Django app configuration for the Marketplace sync engine."""

from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    """Marketplace sync app configuration."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.web.marketplace"
    verbose_name = "Marketplace Sync"
