"""Marketplace services - the sync engine."""

from apps.web.marketplace.services.availability import (
    AvailabilitySyncResult,
    AvailabilitySyncService,
    build_availability_update,
)
from apps.web.marketplace.services.catalog_builder import (
    CatalogBuildResult,
    CatalogGraphBuilder,
    validate_catalog,
)
from apps.web.marketplace.services.catalog_sync import (
    CatalogSyncResult,
    CatalogSyncService,
    stage_products,
)
from apps.web.marketplace.services.dead_letter import DeadLetterEscalator
from apps.web.marketplace.services.failures import classify_failure, error_code_for
from apps.web.marketplace.services.idempotency import IdempotencyGuard
from apps.web.marketplace.services.order_dispatch import (
    DispatchOutcome,
    DispatchResult,
    OrderDispatcher,
)
from apps.web.marketplace.services.order_intake import receive_order, resolve_vendor
from apps.web.marketplace.services.order_mapper import OrderMapper
from apps.web.marketplace.services.registry import (
    BulkMappingResult,
    StableIdMappingRegistry,
    cleanup_inactive_mappings,
)
from apps.web.marketplace.services.retry import RetryScheduler, retry_delay
from apps.web.marketplace.services.sync_status import SyncStatusTracker

__all__ = [
    "AvailabilitySyncResult",
    "AvailabilitySyncService",
    "BulkMappingResult",
    "CatalogBuildResult",
    "CatalogGraphBuilder",
    "CatalogSyncResult",
    "CatalogSyncService",
    "DeadLetterEscalator",
    "DispatchOutcome",
    "DispatchResult",
    "IdempotencyGuard",
    "OrderDispatcher",
    "OrderMapper",
    "RetryScheduler",
    "StableIdMappingRegistry",
    "SyncStatusTracker",
    "build_availability_update",
    "classify_failure",
    "cleanup_inactive_mappings",
    "error_code_for",
    "receive_order",
    "resolve_vendor",
    "retry_delay",
    "stage_products",
    "validate_catalog",
]
