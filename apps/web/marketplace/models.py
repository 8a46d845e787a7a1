"""
Marketplace sync models.

Stable id mappings, idempotency records, the order dispatch audit log,
dead letters, catalog submissions, staged POS products, and the durable
event queue.
"""

import uuid

from django.db import models
from django.utils import timezone

from apps.web.core.models import AccountScopedModel, POSAccount

# =============================================================================
# Stable Id Mapping
# =============================================================================


class EntityType(models.TextChoices):
    """POS entity kinds that receive a Marketplace remote code."""

    PRODUCT = "product", "Product"
    CATEGORY = "category", "Category"
    MODIFIER = "modifier", "Modifier group"
    MODIFIER_OPTION = "modifier_option", "Modifier option"
    GROUP = "group", "Group"


class StableMapping(AccountScopedModel):
    """
    Permanent association between a POS entity and its Marketplace code.

    The key (account, branch_id, entity_type, pos_id) is never re-keyed and
    remote_code never changes once written. Everything else is metadata
    refreshed on each sync.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Key
    branch_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="POS branch the mapping is scoped to (blank = all branches)",
    )
    entity_type = models.CharField(max_length=20, choices=EntityType.choices)
    pos_id = models.CharField(max_length=255)

    # Value
    remote_code = models.CharField(max_length=100)

    # Metadata
    display_name = models.CharField(max_length=255, blank=True)
    parent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="children",
    )
    is_active = models.BooleanField(default=True)
    first_synced_at = models.DateTimeField(default=timezone.now)
    last_verified_at = models.DateTimeField(default=timezone.now)
    sync_count = models.PositiveIntegerField(default=1)
    structure_hash = models.CharField(max_length=64, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["entity_type", "pos_id"]
        indexes = [
            models.Index(fields=["account", "is_active"], name="mp_mapping_account_active"),
            models.Index(fields=["account", "entity_type"], name="mp_mapping_account_type"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "branch_id", "entity_type", "pos_id"],
                name="unique_stable_mapping_key",
            ),
            models.UniqueConstraint(
                fields=["account", "remote_code"],
                name="unique_stable_mapping_remote_code",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.pos_id} -> {self.remote_code}"


# =============================================================================
# Idempotency
# =============================================================================


class IdempotencyStatus(models.TextChoices):
    """Idempotency record lifecycle."""

    STARTED = "started", "Started"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class IdempotencyRecord(AccountScopedModel):
    """
    Tracks one inbound event per (account, key).

    The unique constraint is the check-and-set: whoever inserts first owns
    the event. Terminal records expire after the retention window.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    key = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20,
        choices=IdempotencyStatus.choices,
        default=IdempotencyStatus.STARTED,
    )
    attempts = models.PositiveIntegerField(default=1)
    first_seen_at = models.DateTimeField(default=timezone.now)
    last_processed_at = models.DateTimeField(default=timezone.now)
    result_hash = models.CharField(max_length=64, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-first_seen_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="mp_idem_status_expires"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "key"],
                name="unique_idempotency_key",
            )
        ]

    def __str__(self) -> str:
        return f"{self.key} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status != IdempotencyStatus.STARTED


# =============================================================================
# Order Dispatch
# =============================================================================


class OrderSyncStatus(models.TextChoices):
    """Order dispatch status."""

    ENQUEUED = "enqueued", "Enqueued"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class OrderSyncLog(AccountScopedModel):
    """
    Audit trail for one Marketplace order.

    Created when the webhook is received and mutated only by the order
    dispatcher. Rows are never deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(
        POSAccount,
        on_delete=models.PROTECT,
        related_name="ordersynclogs",
    )

    # Marketplace identifiers
    vendor_code = models.CharField(max_length=100)
    platform_restaurant_id = models.CharField(max_length=100, blank=True)
    order_token = models.CharField(max_length=255, blank=True)
    order_code = models.CharField(max_length=100, blank=True)
    short_code = models.CharField(max_length=50, blank=True)
    correlation_id = models.CharField(max_length=100)
    is_test_order = models.BooleanField(default=False)
    products_count = models.PositiveIntegerField(default=0)
    order_created_at = models.DateTimeField(null=True, blank=True)

    # Dispatch state
    status = models.CharField(
        max_length=20,
        choices=OrderSyncStatus.choices,
        default=OrderSyncStatus.ENQUEUED,
    )
    received_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    error_code = models.CharField(max_length=100, blank=True)
    error_message = models.TextField(blank=True)

    # POS result
    pos_order_id = models.CharField(max_length=100, blank=True)
    pos_response = models.JSONField(null=True, blank=True)

    # Payload snapshot
    webhook_payload = models.JSONField(
        null=True,
        blank=True,
        help_text="Raw order webhook payload",
    )

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["account", "status"], name="mp_order_account_status"),
            models.Index(fields=["vendor_code", "received_at"], name="mp_order_vendor_received"),
            models.Index(fields=["order_token"], name="mp_order_token"),
        ]

    def __str__(self) -> str:
        return f"{self.vendor_code}:{self.order_code or self.order_token} ({self.status})"


# =============================================================================
# Dead Letters
# =============================================================================


class DeadLetterEventType(models.TextChoices):
    """Kinds of events that can be dead-lettered."""

    ORDER_SYNC = "OrderSync", "Order sync"
    AVAILABILITY_UPDATE = "AvailabilityUpdate", "Availability update"
    CATALOG_SYNC = "CatalogSync", "Catalog sync"


class FailureTypeChoice(models.TextChoices):
    TRANSIENT = "Transient", "Transient"
    PERMANENT = "Permanent", "Permanent"


class DeadLetterPriority(models.IntegerChoices):
    LOW = 0, "Low"
    NORMAL = 1, "Normal"
    HIGH = 2, "High"
    CRITICAL = 3, "Critical"


class ReplayResult(models.TextChoices):
    SUCCESS = "success", "Success"
    FAILURE = "failure", "Failure"


class DeadLetterMessage(models.Model):
    """
    An event moved out of the normal path.

    Holds the full original message and failure diagnostics. A dead letter
    is closed by acknowledging it or by replaying it.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.CharField(max_length=30, choices=DeadLetterEventType.choices)
    correlation_id = models.CharField(max_length=100)
    account = models.ForeignKey(
        "core.POSAccount",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="dead_letters",
    )
    original_message = models.JSONField()

    # Failure
    error_code = models.CharField(max_length=100)
    error_message = models.TextField(blank=True)
    stack_trace = models.TextField(blank=True)
    attempts = models.PositiveIntegerField(default=1)
    failure_type = models.CharField(max_length=20, choices=FailureTypeChoice.choices)
    first_attempt_at = models.DateTimeField(default=timezone.now)
    last_attempt_at = models.DateTimeField(default=timezone.now)

    # Replay
    is_replayed = models.BooleanField(default=False)
    replayed_at = models.DateTimeField(null=True, blank=True)
    replayed_by = models.CharField(max_length=150, blank=True)
    replay_result = models.CharField(
        max_length=20, choices=ReplayResult.choices, blank=True
    )
    replay_error_message = models.TextField(blank=True)

    # Acknowledgement
    is_acknowledged = models.BooleanField(default=False)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    acknowledged_by = models.CharField(max_length=150, blank=True)
    notes = models.TextField(blank=True)

    priority = models.IntegerField(
        choices=DeadLetterPriority.choices,
        default=DeadLetterPriority.NORMAL,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "last_attempt_at"]
        indexes = [
            models.Index(fields=["is_replayed", "is_acknowledged"], name="mp_dlq_open"),
            models.Index(fields=["event_type"], name="mp_dlq_event_type"),
            models.Index(fields=["correlation_id"], name="mp_dlq_correlation"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type}:{self.correlation_id} ({self.error_code})"

    @property
    def is_pending(self) -> bool:
        return not self.is_replayed and not self.is_acknowledged


# =============================================================================
# Catalog Submission
# =============================================================================


class SubmissionStatus(models.TextChoices):
    """Catalog submission lifecycle."""

    SUBMITTED = "submitted", "Submitted"
    PROCESSING = "processing", "Processing"
    DONE = "done", "Done"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    PARTIAL = "partial", "Partial"


class CatalogSubmission(AccountScopedModel):
    """
    A catalog sent to the Marketplace, keyed by the returned import id.

    Advanced by the import-status callback.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    vendor_code = models.CharField(max_length=100)
    chain_code = models.CharField(max_length=100, blank=True)
    import_id = models.CharField(max_length=255, blank=True, db_index=True)
    correlation_id = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=20,
        choices=SubmissionStatus.choices,
        default=SubmissionStatus.SUBMITTED,
    )
    api_version = models.CharField(max_length=10, default="v2")
    catalog_hash = models.CharField(max_length=64, blank=True)

    # Submitted counts
    products_count = models.PositiveIntegerField(default=0)
    categories_count = models.PositiveIntegerField(default=0)
    toppings_count = models.PositiveIntegerField(default=0)

    # Reported counts
    categories_created = models.PositiveIntegerField(default=0)
    categories_updated = models.PositiveIntegerField(default=0)
    products_created = models.PositiveIntegerField(default=0)
    products_updated = models.PositiveIntegerField(default=0)
    errors_count = models.PositiveIntegerField(default=0)
    errors = models.JSONField(default=list, blank=True)
    response_message = models.TextField(blank=True)

    submitted_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    processing_duration_seconds = models.FloatField(null=True, blank=True)

    callback_url = models.CharField(max_length=500, blank=True)
    webhook_payload = models.JSONField(null=True, blank=True)
    details = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-submitted_at"]
        indexes = [
            models.Index(fields=["account", "vendor_code", "submitted_at"], name="mp_submission_vendor"),
        ]

    def __str__(self) -> str:
        return f"{self.vendor_code}:{self.import_id or '-'} ({self.status})"


# =============================================================================
# Staged POS Products
# =============================================================================


class ProductSyncStatus(models.TextChoices):
    """Marketplace sync state of a staged product."""

    PENDING = "pending", "Pending"
    SUBMITTED = "submitted", "Submitted"
    PROCESSING = "processing", "Processing"
    DONE = "done", "Done"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    PARTIAL = "partial", "Partial"


class StagedProduct(AccountScopedModel):
    """
    Last fetched copy of a POS product, with its Marketplace sync state.

    An account can feed several vendors, so each vendor keeps its own copy.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pos_product_id = models.CharField(max_length=255)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    image_url = models.CharField(max_length=1000, blank=True)
    is_active = models.BooleanField(default=True)
    category_id = models.CharField(max_length=255, blank=True)
    category_name = models.CharField(max_length=255, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    branch_ids = models.JSONField(default=list, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    sync_date = models.DateTimeField(null=True, blank=True)

    # Marketplace sync
    marketplace_sync_status = models.CharField(
        max_length=20,
        choices=ProductSyncStatus.choices,
        default=ProductSyncStatus.PENDING,
    )
    marketplace_import_id = models.CharField(max_length=255, blank=True, db_index=True)
    marketplace_vendor_code = models.CharField(max_length=100, blank=True)
    marketplace_submitted_at = models.DateTimeField(null=True, blank=True)
    marketplace_sync_completed_at = models.DateTimeField(null=True, blank=True)
    marketplace_last_error = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["account", "marketplace_vendor_code"], name="mp_staged_vendor"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "marketplace_vendor_code", "pos_product_id"],
                name="unique_staged_product",
            )
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.marketplace_sync_status})"


# =============================================================================
# Event Queue
# =============================================================================


class QueuedEventStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    DONE = "done", "Done"
    FAILED = "failed", "Failed"


class QueuedEvent(models.Model):
    """
    Durable outbox row behind the database message bus.

    Rows become due at available_at and are drained by the
    process_event_queue command. A row left Processing past the lease (its
    worker died) is put back in the queue.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    correlation_id = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=20,
        choices=QueuedEventStatus.choices,
        default=QueuedEventStatus.PENDING,
    )
    available_at = models.DateTimeField(default=timezone.now)
    attempts = models.PositiveIntegerField(default=0)
    claimed_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["available_at"]
        indexes = [
            models.Index(fields=["status", "available_at"], name="mp_queue_status_due"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} ({self.status})"
