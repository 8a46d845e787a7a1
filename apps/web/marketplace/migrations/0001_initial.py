import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StableMapping",
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
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="POS branch the mapping is scoped to (blank = all branches)",
                        max_length=100,
                    ),
                ),
                (
                    "entity_type",
                    models.CharField(
                        choices=[
                            ("product", "Product"),
                            ("category", "Category"),
                            ("modifier", "Modifier group"),
                            ("modifier_option", "Modifier option"),
                            ("group", "Group"),
                        ],
                        max_length=20,
                    ),
                ),
                ("pos_id", models.CharField(max_length=255)),
                ("remote_code", models.CharField(max_length=100)),
                ("display_name", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "first_synced_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "last_verified_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("sync_count", models.PositiveIntegerField(default=1)),
                ("structure_hash", models.CharField(blank=True, max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stablemappings",
                        to="core.posaccount",
                    ),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="children",
                        to="marketplace.stablemapping",
                    ),
                ),
            ],
            options={
                "ordering": ["entity_type", "pos_id"],
                "indexes": [
                    models.Index(
                        fields=["account", "is_active"],
                        name="mp_mapping_account_active",
                    ),
                    models.Index(
                        fields=["account", "entity_type"],
                        name="mp_mapping_account_type",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "branch_id", "entity_type", "pos_id"),
                        name="unique_stable_mapping_key",
                    ),
                    models.UniqueConstraint(
                        fields=("account", "remote_code"),
                        name="unique_stable_mapping_remote_code",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyRecord",
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
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("key", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("started", "Started"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        default="started",
                        max_length=20,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=1)),
                (
                    "first_seen_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "last_processed_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("result_hash", models.CharField(blank=True, max_length=64)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="idempotencyrecords",
                        to="core.posaccount",
                    ),
                ),
            ],
            options={
                "ordering": ["-first_seen_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "expires_at"],
                        name="mp_idem_status_expires",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "key"),
                        name="unique_idempotency_key",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderSyncLog",
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
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("vendor_code", models.CharField(max_length=100)),
                (
                    "platform_restaurant_id",
                    models.CharField(blank=True, max_length=100),
                ),
                ("order_token", models.CharField(blank=True, max_length=255)),
                ("order_code", models.CharField(blank=True, max_length=100)),
                ("short_code", models.CharField(blank=True, max_length=50)),
                ("correlation_id", models.CharField(max_length=100)),
                ("is_test_order", models.BooleanField(default=False)),
                ("products_count", models.PositiveIntegerField(default=0)),
                ("order_created_at", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("enqueued", "Enqueued"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        default="enqueued",
                        max_length=20,
                    ),
                ),
                (
                    "received_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("error_code", models.CharField(blank=True, max_length=100)),
                ("error_message", models.TextField(blank=True)),
                ("pos_order_id", models.CharField(blank=True, max_length=100)),
                ("pos_response", models.JSONField(blank=True, null=True)),
                (
                    "webhook_payload",
                    models.JSONField(
                        blank=True,
                        help_text="Raw order webhook payload",
                        null=True,
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ordersynclogs",
                        to="core.posaccount",
                    ),
                ),
            ],
            options={
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(
                        fields=["account", "status"],
                        name="mp_order_account_status",
                    ),
                    models.Index(
                        fields=["vendor_code", "received_at"],
                        name="mp_order_vendor_received",
                    ),
                    models.Index(fields=["order_token"], name="mp_order_token"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeadLetterMessage",
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
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("MenuSync", "Menu sync"),
                            ("OrderSync", "Order sync"),
                            ("AvailabilityUpdate", "Availability update"),
                            ("CatalogSync", "Catalog sync"),
                        ],
                        max_length=30,
                    ),
                ),
                ("correlation_id", models.CharField(max_length=100)),
                ("original_message", models.JSONField()),
                ("error_code", models.CharField(max_length=100)),
                ("error_message", models.TextField(blank=True)),
                ("stack_trace", models.TextField(blank=True)),
                ("attempts", models.PositiveIntegerField(default=1)),
                (
                    "failure_type",
                    models.CharField(
                        choices=[
                            ("Transient", "Transient"),
                            ("Permanent", "Permanent"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "first_attempt_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "last_attempt_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("is_replayed", models.BooleanField(default=False)),
                ("replayed_at", models.DateTimeField(blank=True, null=True)),
                ("replayed_by", models.CharField(blank=True, max_length=150)),
                (
                    "replay_result",
                    models.CharField(
                        blank=True,
                        choices=[("success", "Success"), ("failure", "Failure")],
                        max_length=20,
                    ),
                ),
                ("replay_error_message", models.TextField(blank=True)),
                ("is_acknowledged", models.BooleanField(default=False)),
                ("acknowledged_at", models.DateTimeField(blank=True, null=True)),
                ("acknowledged_by", models.CharField(blank=True, max_length=150)),
                ("notes", models.TextField(blank=True)),
                (
                    "priority",
                    models.IntegerField(
                        choices=[
                            (0, "Low"),
                            (1, "Normal"),
                            (2, "High"),
                            (3, "Critical"),
                        ],
                        default=1,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "account",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="dead_letters",
                        to="core.posaccount",
                    ),
                ),
            ],
            options={
                "ordering": ["-priority", "last_attempt_at"],
                "indexes": [
                    models.Index(
                        fields=["is_replayed", "is_acknowledged"],
                        name="mp_dlq_open",
                    ),
                    models.Index(fields=["event_type"], name="mp_dlq_event_type"),
                    models.Index(fields=["correlation_id"], name="mp_dlq_correlation"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CatalogSubmission",
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
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("vendor_code", models.CharField(max_length=100)),
                ("chain_code", models.CharField(blank=True, max_length=100)),
                (
                    "import_id",
                    models.CharField(blank=True, db_index=True, max_length=255),
                ),
                ("correlation_id", models.CharField(blank=True, max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("submitted", "Submitted"),
                            ("processing", "Processing"),
                            ("done", "Done"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("partial", "Partial"),
                        ],
                        default="submitted",
                        max_length=20,
                    ),
                ),
                ("api_version", models.CharField(default="v2", max_length=10)),
                ("catalog_hash", models.CharField(blank=True, max_length=64)),
                ("products_count", models.PositiveIntegerField(default=0)),
                ("categories_count", models.PositiveIntegerField(default=0)),
                ("toppings_count", models.PositiveIntegerField(default=0)),
                ("categories_created", models.PositiveIntegerField(default=0)),
                ("categories_updated", models.PositiveIntegerField(default=0)),
                ("products_created", models.PositiveIntegerField(default=0)),
                ("products_updated", models.PositiveIntegerField(default=0)),
                ("errors_count", models.PositiveIntegerField(default=0)),
                ("errors", models.JSONField(blank=True, default=list)),
                ("response_message", models.TextField(blank=True)),
                (
                    "submitted_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "processing_duration_seconds",
                    models.FloatField(blank=True, null=True),
                ),
                ("callback_url", models.CharField(blank=True, max_length=500)),
                ("webhook_payload", models.JSONField(blank=True, null=True)),
                ("details", models.JSONField(blank=True, default=list)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="catalogsubmissions",
                        to="core.posaccount",
                    ),
                ),
            ],
            options={
                "ordering": ["-submitted_at"],
                "indexes": [
                    models.Index(
                        fields=["account", "vendor_code", "submitted_at"],
                        name="mp_submission_vendor",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StagedProduct",
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
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("pos_product_id", models.CharField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("image_url", models.CharField(blank=True, max_length=1000)),
                ("is_active", models.BooleanField(default=True)),
                ("category_id", models.CharField(blank=True, max_length=255)),
                ("category_name", models.CharField(blank=True, max_length=255)),
                (
                    "price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=12, null=True
                    ),
                ),
                ("branch_ids", models.JSONField(blank=True, default=list)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("sync_date", models.DateTimeField(blank=True, null=True)),
                (
                    "marketplace_sync_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("submitted", "Submitted"),
                            ("processing", "Processing"),
                            ("done", "Done"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("partial", "Partial"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "marketplace_import_id",
                    models.CharField(blank=True, db_index=True, max_length=255),
                ),
                (
                    "marketplace_vendor_code",
                    models.CharField(blank=True, max_length=100),
                ),
                (
                    "marketplace_submitted_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "marketplace_sync_completed_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("marketplace_last_error", models.TextField(blank=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stagedproducts",
                        to="core.posaccount",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(
                        fields=["account", "marketplace_vendor_code"],
                        name="mp_staged_vendor",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "pos_product_id"),
                        name="unique_staged_product",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueuedEvent",
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
                ("event_type", models.CharField(max_length=100)),
                ("payload", models.JSONField()),
                ("correlation_id", models.CharField(blank=True, max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("done", "Done"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "available_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("error", models.TextField(blank=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["available_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "available_at"],
                        name="mp_queue_status_due",
                    ),
                ],
            },
        ),
    ]
