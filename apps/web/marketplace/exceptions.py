"""Marketplace sync exceptions."""


class MarketplaceError(Exception):
    """Base exception for Marketplace sync errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# =============================================================================
# Marketplace API
# =============================================================================


class MarketplaceAuthError(MarketplaceError):
    """Marketplace login failed or the token was rejected after a re-login."""


class MarketplaceAPIError(MarketplaceError):
    """API request to the Marketplace failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


# =============================================================================
# Validation
# =============================================================================


class CatalogValidationError(MarketplaceError):
    """The catalog graph violates a structural rule; nothing was submitted."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(f"Catalog validation failed: {'; '.join(errors)}")
        self.errors = errors


class OrderPayloadError(MarketplaceError):
    """The stored order payload is missing, corrupt, or has nothing to map."""


class UnmappedRemoteCodeError(MarketplaceError):
    """An order references a remote code with no stable mapping."""

    def __init__(self, remote_code: str, entity: str = "product") -> None:
        super().__init__(f"No POS mapping for {entity} remote code {remote_code!r}")
        self.remote_code = remote_code
        self.entity = entity


class VendorNotFoundError(MarketplaceError):
    """No active vendor matches the inbound request."""


# =============================================================================
# Processing State
# =============================================================================


class OperationInProgressError(MarketplaceError):
    """Another worker already holds this event's current attempt."""


class DeadLetterNotFoundError(MarketplaceError):
    """No dead letter with the given id."""


class DeadLetterStateError(MarketplaceError):
    """The dead letter was already replayed or acknowledged."""


class ReplayNotSupportedError(MarketplaceError):
    """The dead letter's event type cannot be replayed automatically."""
