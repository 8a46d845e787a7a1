"""
Pytest configuration for Django app tests.
"""

import pytest

from apps.web.core.models import MarketplaceVendor, POSAccount, Tenant


@pytest.fixture
def tenant() -> Tenant:
    """Create a test tenant."""
    return Tenant.objects.create(slug="test-tenant", name="Test Tenant")


@pytest.fixture
def pos_account(tenant: Tenant) -> POSAccount:
    """Create a POS account with a configured branch."""
    return POSAccount.objects.create(
        tenant=tenant,
        name="Main POS",
        provider="mock",
        client_id="client-id",
        client_secret="client-secret",
        branch_id="branch-main",
        branch_name="Main Street",
    )


@pytest.fixture
def vendor(tenant: Tenant, pos_account: POSAccount) -> MarketplaceVendor:
    """Create a Marketplace vendor backed by the POS account."""
    return MarketplaceVendor.objects.create(
        tenant=tenant,
        pos_account=pos_account,
        vendor_code="v-001",
        chain_code="chain-1",
        platform_restaurant_id="pr-001",
        username="vendor-user",
        password="vendor-pass",
    )
