"""Django app configuration for the POS connector."""

from django.apps import AppConfig


class PosConfig(AppConfig):
    """POS connector app configuration (adapters and credential sessions)."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.web.pos"
    verbose_name = "POS Connector"
