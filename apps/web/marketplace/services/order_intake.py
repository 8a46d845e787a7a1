"""
Order intake - turns an order webhook into an audit row plus a dispatch event.

The log row and the published event are written in one transaction, so a
queued event always has its order log.
"""

import logging
import uuid
from typing import Any

from django.db import transaction
from django.utils import timezone

from menusync_schemas import MarketplaceOrder, OrderDispatchEvent
from pydantic import ValidationError

from apps.web.core.models import MarketplaceVendor
from apps.web.marketplace.events import MessageBus
from apps.web.marketplace.exceptions import VendorNotFoundError
from apps.web.marketplace.models import OrderSyncLog, OrderSyncStatus

logger = logging.getLogger(__name__)


def resolve_vendor(
    vendor_code: str | None = None, platform_restaurant_id: str | None = None
) -> MarketplaceVendor:
    """
    Find the active vendor an order belongs to.

    Raises:
        VendorNotFoundError: If neither identifier matches an active vendor.
    """
    vendors = MarketplaceVendor.objects.filter(is_active=True).select_related(
        "pos_account"
    )
    vendor = None
    if vendor_code:
        vendor = vendors.filter(vendor_code=vendor_code).first()
    if vendor is None and platform_restaurant_id:
        vendor = vendors.filter(platform_restaurant_id=platform_restaurant_id).first()
    if vendor is None:
        raise VendorNotFoundError(
            f"No active vendor for code={vendor_code!r} "
            f"platform_restaurant_id={platform_restaurant_id!r}"
        )
    return vendor


def order_idempotency_key(vendor_code: str, order: MarketplaceOrder | None) -> str:
    identity = (order.token or order.code) if order else None
    return f"order:{vendor_code}:{identity or uuid.uuid4().hex}"


def find_order_log(
    vendor_code: str, order: MarketplaceOrder | None
) -> OrderSyncLog | None:
    """The log of an earlier delivery of the same order, if any."""
    if order is None:
        return None
    logs = OrderSyncLog.objects.filter(vendor_code=vendor_code)
    if order.token:
        return logs.filter(order_token=order.token).first()
    if order.code:
        return logs.filter(order_code=order.code).first()
    return None


def receive_order(
    payload: dict[str, Any],
    bus: MessageBus,
    vendor_code: str | None = None,
    correlation_id: str | None = None,
) -> tuple[OrderSyncLog, OrderDispatchEvent]:
    """
    Record an inbound order and publish its dispatch event.

    A payload that does not parse is still recorded; the dispatcher
    dead-letters it as a corrupt payload. A redelivered order (same token,
    or same code when it has no token) reuses the log of its first delivery.

    Raises:
        VendorNotFoundError: If the order cannot be routed to a vendor.
    """
    correlation_id = correlation_id or str(uuid.uuid4())

    order: MarketplaceOrder | None
    try:
        order = MarketplaceOrder.model_validate(payload)
    except ValidationError:
        logger.warning(
            "Order webhook payload does not parse (correlation=%s)", correlation_id
        )
        order = None

    platform_restaurant_id = None
    if order and order.platform_restaurant:
        platform_restaurant_id = order.platform_restaurant.id
    elif isinstance(payload.get("platformRestaurant"), dict):
        platform_restaurant_id = payload["platformRestaurant"].get("id")

    vendor = resolve_vendor(vendor_code, platform_restaurant_id)
    account = vendor.pos_account
    now = timezone.now()

    with transaction.atomic():
        log = find_order_log(vendor.vendor_code, order)
        if log is not None:
            logger.info(
                "Order webhook redelivered for log %s (vendor=%s, correlation=%s)",
                log.pk,
                vendor.vendor_code,
                correlation_id,
            )
        else:
            log = OrderSyncLog.objects.create(
                account=account,
                vendor_code=vendor.vendor_code,
                platform_restaurant_id=platform_restaurant_id or "",
                order_token=(order.token if order else None) or "",
                order_code=(order.code if order else None) or "",
                short_code=(order.short_code if order else None) or "",
                correlation_id=correlation_id,
                is_test_order=bool(order and order.test),
                products_count=len(order.products) if order else 0,
                order_created_at=order.created_at if order else None,
                status=OrderSyncStatus.ENQUEUED,
                received_at=now,
                webhook_payload=payload,
            )
        event = OrderDispatchEvent(
            correlation_id=correlation_id,
            account_id=account.pk,
            vendor_code=vendor.vendor_code,
            tenant_id=vendor.tenant_id,
            order_log_id=log.pk,
            idempotency_key=order_idempotency_key(vendor.vendor_code, order),
            attempt=1,
            occurred_at=now,
        )
        bus.publish(event)

    logger.info(
        "Received order %s for vendor %s (log=%s, correlation=%s)",
        log.order_code or log.order_token or "<unknown>",
        vendor.vendor_code,
        log.pk,
        correlation_id,
    )
    return log, event
