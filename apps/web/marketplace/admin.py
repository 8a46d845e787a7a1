"""Admin registrations for Marketplace sync models."""

from django.contrib import admin
from django.http import HttpRequest

from .models import (
    CatalogSubmission,
    DeadLetterMessage,
    IdempotencyRecord,
    OrderSyncLog,
    QueuedEvent,
    StableMapping,
    StagedProduct,
)


@admin.register(StableMapping)
class StableMappingAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "remote_code",
        "entity_type",
        "pos_id",
        "display_name",
        "account",
        "branch_id",
        "is_active",
        "sync_count",
        "last_verified_at",
    ]
    list_filter = ["entity_type", "is_active"]
    search_fields = ["remote_code", "pos_id", "display_name"]
    readonly_fields = [
        "id",
        "account",
        "branch_id",
        "entity_type",
        "pos_id",
        "remote_code",
        "first_synced_at",
        "created_at",
        "updated_at",
    ]


@admin.register(IdempotencyRecord)
class IdempotencyRecordAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["key", "account", "status", "attempts", "first_seen_at", "expires_at"]
    list_filter = ["status"]
    search_fields = ["key"]
    readonly_fields = ["id", "first_seen_at", "last_processed_at", "result_hash"]


@admin.register(OrderSyncLog)
class OrderSyncLogAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    """Audit trail: read-only and never deleted."""

    list_display = [
        "order_code",
        "vendor_code",
        "status",
        "attempts",
        "pos_order_id",
        "error_code",
        "received_at",
    ]
    list_filter = ["status", "is_test_order", "vendor_code"]
    search_fields = ["order_code", "order_token", "short_code", "correlation_id", "pos_order_id"]
    date_hierarchy = "received_at"

    def has_add_permission(self, request: HttpRequest) -> bool:  # noqa: ARG002
        return False

    def has_change_permission(self, request: HttpRequest, obj: object = None) -> bool:  # noqa: ARG002
        return False

    def has_delete_permission(self, request: HttpRequest, obj: object = None) -> bool:  # noqa: ARG002
        return False


@admin.register(DeadLetterMessage)
class DeadLetterMessageAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "event_type",
        "correlation_id",
        "error_code",
        "failure_type",
        "attempts",
        "priority",
        "is_replayed",
        "is_acknowledged",
        "last_attempt_at",
    ]
    list_filter = ["event_type", "failure_type", "priority", "is_replayed", "is_acknowledged"]
    search_fields = ["correlation_id", "error_code", "error_message"]
    readonly_fields = [
        "id",
        "original_message",
        "stack_trace",
        "first_attempt_at",
        "last_attempt_at",
        "replayed_at",
        "acknowledged_at",
        "created_at",
        "updated_at",
    ]


@admin.register(CatalogSubmission)
class CatalogSubmissionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "vendor_code",
        "import_id",
        "status",
        "products_count",
        "errors_count",
        "submitted_at",
        "completed_at",
    ]
    list_filter = ["status"]
    search_fields = ["vendor_code", "import_id", "correlation_id"]
    readonly_fields = ["id", "webhook_payload", "errors", "details", "created_at", "updated_at"]


@admin.register(StagedProduct)
class StagedProductAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "name",
        "pos_product_id",
        "account",
        "is_active",
        "marketplace_sync_status",
        "marketplace_vendor_code",
        "sync_date",
    ]
    list_filter = ["marketplace_sync_status", "is_active"]
    search_fields = ["name", "pos_product_id", "marketplace_import_id"]
    readonly_fields = ["id", "payload", "created_at", "updated_at"]


@admin.register(QueuedEvent)
class QueuedEventAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["event_type", "status", "correlation_id", "attempts", "available_at", "processed_at"]
    list_filter = ["status", "event_type"]
    search_fields = ["correlation_id"]
    readonly_fields = ["id", "payload", "created_at"]
