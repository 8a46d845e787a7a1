"""
Marketplace background tasks - order dispatch, catalog sync
and availability updates.

These functions are designed to work with a task queue but are called
synchronously by the process_event_queue, sync_catalog and
sync_availability commands.
"""

import logging
from typing import Any

from menusync_schemas import OrderDispatchEvent, OrderDispatchRetryEvent

from apps.web.core.models import MarketplaceVendor
from apps.web.marketplace.events import JobScheduler, MessageBus
from apps.web.marketplace.services import (
    AvailabilitySyncService,
    CatalogSyncService,
    DeadLetterEscalator,
    DispatchOutcome,
    OrderDispatcher,
    RetryScheduler,
)
from apps.web.pos.services import CredentialService

logger = logging.getLogger(__name__)


def build_order_dispatcher(
    bus: MessageBus,
    scheduler: JobScheduler,
    credentials: CredentialService | None = None,
) -> OrderDispatcher:
    """Wire a dispatcher from its collaborators."""
    return OrderDispatcher(
        credentials=credentials or CredentialService(),
        retry_scheduler=RetryScheduler(bus, scheduler),
        dead_letters=DeadLetterEscalator(bus),
    )


def dispatch_order_task(
    event: OrderDispatchEvent, dispatcher: OrderDispatcher
) -> dict[str, Any]:
    """
    Run one dispatch attempt.

    Returns:
        Dict with the attempt outcome.
    """
    result = dispatcher.dispatch(event)
    return {
        "success": result.outcome == DispatchOutcome.SUCCEEDED,
        "outcome": result.outcome.value,
        "order_log_id": str(result.order_log_id) if result.order_log_id else None,
        "pos_order_id": result.pos_order_id,
        "error": result.error_message,
        "retry_delay": result.retry_delay_seconds,
        "dead_letter_id": str(result.dead_letter_id) if result.dead_letter_id else None,
    }


def handle_event(
    event_type: str, payload: dict[str, Any], dispatcher: OrderDispatcher
) -> dict[str, Any]:
    """
    Route a queued event to its handler.

    Raises:
        ValueError: If the event type is unknown.
    """
    match event_type:
        case "order.dispatch.v1":
            event = OrderDispatchEvent.model_validate(payload)
        case "order.dispatch.retry.v1":
            event = OrderDispatchRetryEvent.model_validate(payload).message
        case _:
            raise ValueError(f"Unknown event type: {event_type}")
    return dispatch_order_task(event, dispatcher)


def sync_catalog_task(
    vendor_code: str,
    force: bool = False,
    service: CatalogSyncService | None = None,
) -> dict[str, Any]:
    """
    Sync one vendor's catalog.

    Returns:
        Dict with the submission result or error info.
    """
    try:
        vendor = MarketplaceVendor.objects.select_related("pos_account").get(
            vendor_code=vendor_code, is_active=True
        )
    except MarketplaceVendor.DoesNotExist:
        return {"success": False, "vendor_code": vendor_code, "error": "Vendor not found"}

    service = service or CatalogSyncService(CredentialService())
    try:
        result = service.sync_vendor(vendor, force=force)
    except Exception as e:
        logger.exception("Catalog sync failed for vendor %s", vendor_code)
        return {"success": False, "vendor_code": vendor_code, "error": str(e)}

    return {
        "success": True,
        "vendor_code": vendor_code,
        "skipped": result.skipped,
        "import_id": result.import_id,
        "products": result.products_count,
        "warnings": len(result.warnings),
    }


def sync_availability_task(
    vendor_code: str,
    service: AvailabilitySyncService | None = None,
) -> dict[str, Any]:
    """
    Push one vendor's product availability.

    Returns:
        Dict with the update counts or error info.
    """
    try:
        vendor = MarketplaceVendor.objects.select_related("pos_account").get(
            vendor_code=vendor_code, is_active=True
        )
    except MarketplaceVendor.DoesNotExist:
        return {"success": False, "vendor_code": vendor_code, "error": "Vendor not found"}

    service = service or AvailabilitySyncService(CredentialService())
    try:
        result = service.sync_vendor(vendor)
    except Exception as e:
        logger.exception("Availability update failed for vendor %s", vendor_code)
        return {"success": False, "vendor_code": vendor_code, "error": str(e)}

    return {
        "success": True,
        "vendor_code": vendor_code,
        "items": result.items_count,
        "available": result.available_count,
        "unmapped": len(result.unmapped),
    }
