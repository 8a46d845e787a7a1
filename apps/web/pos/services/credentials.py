"""
POS credential sessions.

Sessions are cached per account in an explicit TokenCache. When the POS
rejects a cached token, the entry is invalidated, the session refreshed
once, and the rejected call retried a single time. A second rejection
propagates to the caller as a POSAuthError.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings

from menusync_schemas import POSCredentials, POSProvider, POSSession

from apps.web.core.cache import TokenCache
from apps.web.pos.adapters import POSAdapter, get_adapter
from apps.web.pos.exceptions import POSAuthError

if TYPE_CHECKING:
    from apps.web.core.models import POSAccount

logger = logging.getLogger(__name__)

T = TypeVar("T")

POSOperation = Callable[[POSAdapter, POSSession], Awaitable[T]]


def get_pos_credentials(account: "POSAccount") -> POSCredentials:
    """Build adapter credentials from a POS account row."""
    return POSCredentials(
        provider=POSProvider(account.provider),
        client_id=account.client_id,
        client_secret=account.client_secret,
        access_token=account.access_token or None,
    )


def _default_adapter_factory(account: "POSAccount") -> POSAdapter:
    return get_adapter(account.provider)


class CredentialService:
    """
    Hands out authenticated POS sessions and runs calls against them.

    Usage:
        credentials = CredentialService()
        products = credentials.call_with_auth_refresh(
            account, lambda adapter, session: adapter.get_products(session)
        )
    """

    def __init__(
        self,
        adapter_factory: Callable[["POSAccount"], POSAdapter] | None = None,
        cache: TokenCache[POSSession] | None = None,
    ) -> None:
        """
        Args:
            adapter_factory: Builds an adapter for an account. A fresh adapter
                is built per call so HTTP clients never outlive their loop.
            cache: Session cache; defaults to one bounded by
                settings.TOKEN_CACHE_TTL_SECONDS.
        """
        self._adapter_factory = adapter_factory or _default_adapter_factory
        if cache is None:
            cache = TokenCache(
                ttl_seconds=getattr(settings, "TOKEN_CACHE_TTL_SECONDS", 3000)
            )
        self._cache: TokenCache[POSSession] = cache

    def invalidate(self, account: "POSAccount") -> None:
        """Forget the cached session for an account."""
        self._cache.invalidate(account.pk)

    async def get_session(
        self, account: "POSAccount", adapter: POSAdapter
    ) -> POSSession:
        """Return the cached session, authenticating if there is none."""
        session = self._cache.get(account.pk)
        if session is not None:
            return session

        session = await adapter.authenticate(get_pos_credentials(account))
        self._store(account, session)
        return session

    async def refresh_session(
        self,
        account: "POSAccount",
        adapter: POSAdapter,
        session: POSSession,
    ) -> POSSession:
        """
        Replace a rejected session.

        Uses the refresh token when the session has one, and falls back to a
        full authentication when there is none or it is rejected too.

        Raises:
            POSAuthError: If the POS rejects the credentials themselves.
        """
        self.invalidate(account)

        refreshed: POSSession | None = None
        if session.refresh_token:
            try:
                refreshed = await adapter.refresh_token(session)
            except POSAuthError:
                logger.warning(
                    "POS refresh token rejected for account %s, re-authenticating",
                    account.pk,
                )

        if refreshed is None:
            refreshed = await adapter.authenticate(get_pos_credentials(account))

        self._store(account, refreshed)
        return refreshed

    def _store(self, account: "POSAccount", session: POSSession) -> None:
        remaining = (session.expires_at - datetime.now(UTC)).total_seconds()
        self._cache.set(account.pk, session, ttl_seconds=remaining)

    async def arun(self, account: "POSAccount", operation: POSOperation[T]) -> T:
        """Async form of call_with_auth_refresh."""
        adapter = self._adapter_factory(account)
        try:
            session = await self.get_session(account, adapter)
            try:
                return await operation(adapter, session)
            except POSAuthError as e:
                logger.warning(
                    "POS rejected session for account %s (%s), refreshing once",
                    account.pk,
                    e.message,
                )
                session = await self.refresh_session(account, adapter, session)
                return await operation(adapter, session)
        finally:
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()

    def call_with_auth_refresh(
        self, account: "POSAccount", operation: POSOperation[T]
    ) -> T:
        """
        Run a POS call, refreshing credentials once on an auth failure.

        Must be called from synchronous code. ORM access stays with the
        caller; only the HTTP work runs inside the event loop.

        Args:
            account: POS account to authenticate as.
            operation: Coroutine function taking (adapter, session).

        Returns:
            Whatever the operation returns.

        Raises:
            POSAuthError: If the call is still rejected after the refresh.
        """
        return asyncio.run(self.arun(account, operation))
