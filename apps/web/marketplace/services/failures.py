"""Failure classification for dispatch errors."""

import httpx
from menusync_schemas import FailureType

from apps.web.marketplace.exceptions import MarketplaceAPIError
from apps.web.pos.exceptions import POSAPIError, POSConnectionError, POSRateLimitError

TRANSIENT_STATUS_CODES = {408, 429}


def _is_transient_status(status_code: int | None) -> bool:
    if status_code is None:
        return True
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def classify_failure(error: BaseException) -> FailureType:
    """
    Decide whether a failure is worth retrying.

    Transient: connection problems, timeouts, 408/429 and 5xx responses.
    Everything else is permanent, including auth failures (the one-shot
    credential refresh has already been spent by the time they surface).
    """
    if isinstance(error, POSRateLimitError | POSConnectionError):
        return FailureType.TRANSIENT
    if isinstance(error, POSAPIError | MarketplaceAPIError):
        if _is_transient_status(error.status_code):
            return FailureType.TRANSIENT
        return FailureType.PERMANENT
    if isinstance(error, httpx.TimeoutException | httpx.TransportError):
        return FailureType.TRANSIENT
    if isinstance(error, TimeoutError | ConnectionError):
        return FailureType.TRANSIENT
    return FailureType.PERMANENT


def error_code_for(error: BaseException) -> str:
    """Error code persisted beside the failing entity."""
    return type(error).__name__
