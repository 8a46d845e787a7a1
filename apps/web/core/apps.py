"""Django app configuration for tenancy and accounts."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.web.core"
    verbose_name = "Tenants & Accounts"
