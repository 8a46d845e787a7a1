"""Mock POS adapter for development and testing."""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from menusync_schemas import (
    POSBranch,
    POSCategory,
    POSCredentials,
    POSModifierGroup,
    POSModifierOption,
    POSOrderRequest,
    POSOrderResult,
    POSProduct,
    POSProvider,
    POSSession,
)

from apps.web.pos.exceptions import POSAuthError, POSOrderError


def _default_products() -> list[POSProduct]:
    """Generate a small default catalog."""
    branch = POSBranch(external_id="branch-main", name="Main Street")
    return [
        POSProduct(
            external_id="prod-burger",
            name="Classic Burger",
            description="Beef patty, cheddar, pickles",
            price=Decimal("8.50"),
            image_url="https://cdn.pos-images.net/burger.jpg",
            category=POSCategory(external_id="cat-burgers", name="Burgers"),
            branches=[branch],
            modifier_groups=[
                POSModifierGroup(
                    external_id="mod-size",
                    name="Size",
                    min_allowed=1,
                    max_allowed=1,
                    options=[
                        POSModifierOption(
                            external_id="opt-single",
                            name="Single",
                            price=Decimal("0.00"),
                        ),
                        POSModifierOption(
                            external_id="opt-double",
                            name="Double",
                            price=Decimal("2.50"),
                        ),
                    ],
                ),
            ],
        ),
        POSProduct(
            external_id="prod-fries",
            name="Fries",
            price=Decimal("3.00"),
            category=POSCategory(external_id="cat-sides", name="Sides"),
            branches=[branch],
        ),
    ]


class MockPOSAdapter:
    """
    Mock POS adapter for development and testing.

    Provides configurable behavior for simulating:
    - Catalog data and branch assignment
    - Scripted failures (exceptions raised in order, one per call)
    - Authentication failures

    Usage:
        adapter = MockPOSAdapter(
            products=custom_products,
            order_failures=[POSAuthError("expired")],  # first call fails
        )
    """

    def __init__(
        self,
        products: list[POSProduct] | None = None,
        fail_auth: bool = False,
        fail_orders: bool = False,
        order_failures: list[Exception] | None = None,
        product_failures: list[Exception] | None = None,
        api_delay_ms: int = 0,
    ) -> None:
        """
        Initialize mock adapter.

        Args:
            products: Catalog to return. Uses the default catalog if None.
            fail_auth: If True, authentication and refresh fail.
            fail_orders: If True, every order creation fails.
            order_failures: Exceptions raised by successive create_order calls
                before it starts succeeding.
            product_failures: Same, for get_products.
            api_delay_ms: Simulated API delay in milliseconds.
        """
        self._products = products if products is not None else _default_products()
        self._fail_auth = fail_auth
        self._fail_orders = fail_orders
        self._order_failures = list(order_failures or [])
        self._product_failures = list(product_failures or [])
        self._api_delay_ms = api_delay_ms

        # Call tracking for assertions
        self.orders: list[POSOrderRequest] = []
        self.auth_calls = 0
        self.refresh_calls = 0
        self.product_calls = 0
        self.order_calls = 0

    @property
    def provider(self) -> POSProvider:
        """The POS provider this adapter connects to."""
        return POSProvider.MOCK

    async def _delay(self) -> None:
        if self._api_delay_ms > 0:
            await asyncio.sleep(self._api_delay_ms / 1000)

    def _session(self, refresh_token: str | None = None) -> POSSession:
        return POSSession(
            provider=POSProvider.MOCK,
            access_token=f"mock-token-{uuid.uuid4().hex[:8]}",
            refresh_token=refresh_token or f"mock-refresh-{uuid.uuid4().hex[:8]}",
            expires_at=datetime.now(UTC) + timedelta(hours=1),
        )

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(
        self,
        credentials: POSCredentials,  # noqa: ARG002
    ) -> POSSession:
        """Authenticate with the mock POS provider."""
        self.auth_calls += 1
        await self._delay()

        if self._fail_auth:
            raise POSAuthError("Mock authentication failure", provider="mock")

        return self._session()

    async def refresh_token(self, session: POSSession) -> POSSession:
        """Refresh an expired access token."""
        self.refresh_calls += 1
        await self._delay()

        if self._fail_auth:
            raise POSAuthError("Mock token refresh failure", provider="mock")

        return self._session(refresh_token=session.refresh_token)

    # =========================================================================
    # Catalog
    # =========================================================================

    async def get_products(
        self,
        session: POSSession,  # noqa: ARG002
        branch_id: str | None = None,
    ) -> list[POSProduct]:
        """Return the configured catalog, optionally filtered by branch."""
        self.product_calls += 1
        await self._delay()

        if self._product_failures:
            raise self._product_failures.pop(0)

        if branch_id is None:
            return list(self._products)
        return [
            p
            for p in self._products
            if any(b.external_id == branch_id for b in p.branches)
        ]

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self,
        session: POSSession,  # noqa: ARG002
        order: POSOrderRequest,
    ) -> POSOrderResult:
        """Create a new order in the mock POS system."""
        self.order_calls += 1
        await self._delay()

        if self._order_failures:
            raise self._order_failures.pop(0)

        if self._fail_orders:
            raise POSOrderError(
                "Mock order creation failure",
                provider="mock",
                order_id=order.meta.get("marketplace_code"),
            )

        order_id = f"mock-order-{uuid.uuid4().hex[:8]}"
        self.orders.append(order)

        return POSOrderResult(
            external_id=order_id,
            reference=uuid.uuid4().hex[:6].upper(),
            status=1,
            raw={"id": order_id, "branch_id": order.branch_id},
        )
