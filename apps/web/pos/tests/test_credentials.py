"""Tests for CredentialService."""

from datetime import UTC, datetime, timedelta

import pytest
from menusync_schemas import POSProvider, POSSession

from apps.web.core.cache import TokenCache
from apps.web.pos.adapters import MockPOSAdapter
from apps.web.pos.exceptions import POSAuthError, POSOrderError
from apps.web.pos.services import CredentialService, get_pos_credentials


class RejectingRefreshAdapter(MockPOSAdapter):
    """Mock whose refresh token is always rejected."""

    async def refresh_token(self, session):
        self.refresh_calls += 1
        raise POSAuthError("refresh token revoked", provider="mock")


def get_products(adapter, session):
    return adapter.get_products(session)


@pytest.mark.django_db
class TestCallWithAuthRefresh:
    """Tests for CredentialService.call_with_auth_refresh."""

    def test_session_cached(self, pos_account):
        """Test that consecutive calls reuse one session."""
        adapter = MockPOSAdapter()
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        credentials.call_with_auth_refresh(pos_account, get_products)
        credentials.call_with_auth_refresh(pos_account, get_products)

        assert adapter.auth_calls == 1
        assert adapter.product_calls == 2

    def test_refreshes_once_on_auth_error(self, pos_account):
        """Test that a rejected session is refreshed and the call retried."""
        adapter = MockPOSAdapter(
            product_failures=[POSAuthError("token expired", provider="mock")]
        )
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        products = credentials.call_with_auth_refresh(pos_account, get_products)

        assert len(products) == 2
        assert adapter.refresh_calls == 1
        assert adapter.product_calls == 2

    def test_second_rejection_propagates(self, pos_account):
        """Test that a call rejected after the refresh raises."""
        adapter = MockPOSAdapter(
            product_failures=[
                POSAuthError("token expired", provider="mock"),
                POSAuthError("still rejected", provider="mock"),
            ]
        )
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        with pytest.raises(POSAuthError, match="still rejected"):
            credentials.call_with_auth_refresh(pos_account, get_products)

        assert adapter.refresh_calls == 1
        assert adapter.product_calls == 2

    def test_rejected_refresh_falls_back_to_authenticate(self, pos_account):
        """Test that a revoked refresh token leads to a full authentication."""
        adapter = RejectingRefreshAdapter(
            product_failures=[POSAuthError("token expired", provider="mock")]
        )
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        credentials.call_with_auth_refresh(pos_account, get_products)

        assert adapter.refresh_calls == 1
        assert adapter.auth_calls == 2

    def test_other_errors_not_refreshed(self, pos_account):
        """Test that non-auth errors propagate without a refresh."""
        adapter = MockPOSAdapter(fail_orders=True)
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        with pytest.raises(POSOrderError):
            credentials.call_with_auth_refresh(
                pos_account,
                lambda adapter, session: adapter.create_order(session, None),
            )

        assert adapter.refresh_calls == 0

    def test_invalidate(self, pos_account):
        """Test that invalidating forces a new authentication."""
        adapter = MockPOSAdapter()
        credentials = CredentialService(adapter_factory=lambda account: adapter)

        credentials.call_with_auth_refresh(pos_account, get_products)
        credentials.invalidate(pos_account)
        credentials.call_with_auth_refresh(pos_account, get_products)

        assert adapter.auth_calls == 2

    def test_expired_session_not_reused(self, pos_account):
        """Test that a session is cached no longer than it is valid."""
        now = [0.0]
        adapter = MockPOSAdapter()
        credentials = CredentialService(
            adapter_factory=lambda account: adapter,
            cache=TokenCache(ttl_seconds=3000, clock=lambda: now[0]),
        )

        credentials.call_with_auth_refresh(pos_account, get_products)
        # Mock sessions last an hour; the cache TTL is shorter
        now[0] = 3001.0
        credentials.call_with_auth_refresh(pos_account, get_products)

        assert adapter.auth_calls == 2


@pytest.mark.django_db
def test_get_pos_credentials(pos_account):
    """Test credential extraction from an account row."""
    pos_account.access_token = ""
    credentials = get_pos_credentials(pos_account)

    assert credentials.provider == POSProvider.MOCK
    assert credentials.client_id == "client-id"
    assert credentials.access_token is None


def test_session_store_uses_remaining_lifetime():
    """Test that a nearly expired session is cached only briefly."""
    cache: TokenCache[POSSession] = TokenCache(ttl_seconds=3000, clock=lambda: 0.0)
    credentials = CredentialService(cache=cache)

    class Account:
        pk = "acct-1"

    session = POSSession(
        provider=POSProvider.MOCK,
        access_token="tok",
        expires_at=datetime.now(UTC) - timedelta(seconds=5),
    )
    credentials._store(Account(), session)

    assert cache.get("acct-1") is None
