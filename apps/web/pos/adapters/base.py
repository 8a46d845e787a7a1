"""Base POS adapter protocol - interface for all POS integrations."""

from typing import Protocol, runtime_checkable

from menusync_schemas import (
    POSCredentials,
    POSOrderRequest,
    POSOrderResult,
    POSProduct,
    POSProvider,
    POSSession,
)


@runtime_checkable
class POSAdapter(Protocol):
    """
    Protocol defining the interface for POS system integrations.

    All POS adapters (REST, Mock) must implement this interface.
    Methods are async to support non-blocking I/O with external APIs.
    """

    @property
    def provider(self) -> POSProvider:
        """The POS provider this adapter connects to."""
        ...

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, credentials: POSCredentials) -> POSSession:
        """
        Authenticate with the POS provider.

        Args:
            credentials: Account credentials for the POS provider.

        Returns:
            Authenticated session with access token.

        Raises:
            POSAuthError: If authentication fails.
        """
        ...

    async def refresh_token(self, session: POSSession) -> POSSession:
        """
        Refresh an expired access token.

        Args:
            session: Current session with refresh token.

        Returns:
            New session with fresh access token.

        Raises:
            POSAuthError: If token refresh fails.
        """
        ...

    # =========================================================================
    # Catalog (read)
    # =========================================================================

    async def get_products(
        self, session: POSSession, branch_id: str | None = None
    ) -> list[POSProduct]:
        """
        Get the full product catalog with categories, branches and modifiers.

        Args:
            session: Authenticated session.
            branch_id: Restrict to products sold at this branch (None = all).

        Returns:
            Product aggregates.

        Raises:
            POSAuthError: If the token is rejected.
            POSAPIError: If the API request fails.
            POSRateLimitError: If rate limit is exceeded.
        """
        ...

    # =========================================================================
    # Orders (write)
    # =========================================================================

    async def create_order(
        self, session: POSSession, order: POSOrderRequest
    ) -> POSOrderResult:
        """
        Create a new order in the POS system.

        Args:
            session: Authenticated session.
            order: Order details to submit.

        Returns:
            Result with POS order ID.

        Raises:
            POSAuthError: If the token is rejected.
            POSOrderError: If the POS rejects the order.
            POSAPIError: If the API request fails.
        """
        ...
