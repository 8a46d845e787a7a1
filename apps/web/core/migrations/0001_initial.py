import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("slug", models.SlugField(help_text="URL-safe identifier", unique=True)),
                ("name", models.CharField(max_length=200)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="POSAccount",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                (
                    "provider",
                    models.CharField(
                        choices=[("rest", "REST API"), ("mock", "Mock")],
                        default="rest",
                        max_length=20,
                    ),
                ),
                ("client_id", models.CharField(blank=True, max_length=255)),
                ("client_secret", models.CharField(blank=True, max_length=255)),
                (
                    "access_token",
                    models.TextField(
                        blank=True,
                        help_text="Static API token (used instead of OAuth when set)",
                    ),
                ),
                (
                    "branch_id",
                    models.CharField(
                        blank=True,
                        help_text="POS branch orders are created in (blank = discover)",
                        max_length=100,
                    ),
                ),
                ("branch_name", models.CharField(blank=True, max_length=200)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pos_accounts",
                        to="core.tenant",
                    ),
                ),
            ],
            options={
                "verbose_name": "POS account",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="MarketplaceVendor",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("vendor_code", models.CharField(max_length=100, unique=True)),
                ("chain_code", models.CharField(blank=True, max_length=100)),
                (
                    "platform_restaurant_id",
                    models.CharField(blank=True, db_index=True, max_length=100),
                ),
                ("platform_key", models.CharField(blank=True, max_length=100)),
                ("username", models.CharField(blank=True, max_length=255)),
                ("password", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "pos_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="vendors",
                        to="core.posaccount",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="vendors",
                        to="core.tenant",
                    ),
                ),
            ],
            options={
                "ordering": ["vendor_code"],
            },
        ),
    ]
