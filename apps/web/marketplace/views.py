"""
Marketplace webhook endpoints.

Webhook authenticity is checked upstream. These views always acknowledge
with 200 so the Marketplace does not redeliver; the outcome is reported in
the JSON body and persisted beside the affected records.
"""

import json
import logging
import uuid

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from apps.web.marketplace.events import DatabaseMessageBus
from apps.web.marketplace.exceptions import VendorNotFoundError
from apps.web.marketplace.services import SyncStatusTracker, receive_order

logger = logging.getLogger(__name__)


def _correlation_id(request: HttpRequest) -> str:
    return request.headers.get("X-Correlation-Id") or str(uuid.uuid4())


def _json_body(request: HttpRequest) -> dict | None:
    try:
        body = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@csrf_exempt
@require_POST
def order_webhook(request: HttpRequest, vendor_code: str | None = None) -> JsonResponse:
    """
    Receive a Marketplace order.

    POST /marketplace/webhooks/orders
    POST /marketplace/webhooks/orders/<vendor_code>

    The vendor comes from the path, the X-Vendor-Code header, or the
    order's platform restaurant id.
    """
    correlation_id = _correlation_id(request)
    payload = _json_body(request)
    if payload is None:
        logger.warning("Invalid order webhook body (correlation=%s)", correlation_id)
        return JsonResponse(
            {"success": False, "correlationId": correlation_id, "error": "Invalid JSON"}
        )

    vendor_code = vendor_code or request.headers.get("X-Vendor-Code")
    try:
        log, _event = receive_order(
            payload,
            DatabaseMessageBus(),
            vendor_code=vendor_code,
            correlation_id=correlation_id,
        )
    except VendorNotFoundError as e:
        logger.warning("%s (correlation=%s)", e.message, correlation_id)
        return JsonResponse(
            {"success": False, "correlationId": correlation_id, "error": e.message}
        )

    return JsonResponse(
        {"success": True, "correlationId": correlation_id, "orderLogId": str(log.pk)}
    )


@csrf_exempt
@require_POST
def catalog_status_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive a catalog import status callback.

    POST /marketplace/webhooks/catalog-status
    """
    correlation_id = _correlation_id(request)
    payload = _json_body(request)
    if payload is None:
        logger.warning("Invalid catalog status body (correlation=%s)", correlation_id)
        return JsonResponse(
            {"success": False, "correlationId": correlation_id, "error": "Invalid JSON"}
        )

    submission = SyncStatusTracker().handle_status(payload, correlation_id=correlation_id)
    return JsonResponse(
        {
            "success": submission is not None,
            "correlationId": correlation_id,
            "status": submission.status if submission else None,
        }
    )


@require_GET
def health(request: HttpRequest) -> JsonResponse:  # noqa: ARG001
    """GET /marketplace/webhooks/health"""
    return JsonResponse({"success": True, "status": "ok"})
