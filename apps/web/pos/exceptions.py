"""POS integration exceptions."""


class POSError(Exception):
    """Base exception for POS integration errors."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.message = message
        self.provider = provider
        super().__init__(message)


class POSAuthError(POSError):
    """Authentication failed with the POS provider (401/403 or bad credentials)."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code


class POSAPIError(POSError):
    """API request to the POS provider failed."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code
        self.response_body = response_body


class POSConnectionError(POSAPIError):
    """The request never got a response (timeout, reset, DNS)."""


class POSRateLimitError(POSAPIError):
    """Rate limit exceeded with the POS provider."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, provider, status_code=429)
        self.retry_after = retry_after


class POSOrderError(POSError):
    """
    The POS rejected the order.

    `order_id` is the Marketplace code of the rejected order, when known.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        order_id: str | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.order_id = order_id


class BranchResolutionError(POSError):
    """No branch is configured and none could be discovered from the catalog."""
