"""
Marketplace API client - login, catalog submission and item availability.

Access tokens are kept in an explicit TokenCache keyed by (API root,
username). A 401 on a call invalidates the cached token, logs in again and
retries the call once.
"""

import logging
from typing import Any

from django.conf import settings

import httpx
from menusync_schemas import CatalogSubmissionPayload, ItemAvailabilityPayload

from apps.web.core.cache import TokenCache
from apps.web.marketplace.exceptions import MarketplaceAPIError, MarketplaceAuthError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.marketplace.invalid"


class MarketplaceClient:
    """
    Async client for the Marketplace API.

    Usage:
        client = MarketplaceClient(vendor.username, vendor.password, token_cache=cache)
        try:
            import_id = await client.submit_catalog(vendor.chain_code, payload)
        finally:
            await client.close()
    """

    LOGIN_PATH = "v2/login"
    CATALOG_PATH = "v2/chains/{chain_code}/catalog"
    AVAILABILITY_PATH = "v2/catalogs/stores/{vendor_code}/items/availability"

    def __init__(
        self,
        username: str,
        password: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        token_cache: TokenCache[str] | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            username: Marketplace API login.
            password: Marketplace API password.
            http_client: Optional HTTP client for dependency injection (testing).
            base_url: API root; defaults to settings.MARKETPLACE_API_BASE_URL.
            token_cache: Shared token cache; a private one is used if None.
        """
        timeout = getattr(settings, "HTTP_TIMEOUT_SECONDS", 30.0)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        root = base_url or getattr(settings, "MARKETPLACE_API_BASE_URL", DEFAULT_BASE_URL)
        self.base_url = root.rstrip("/")
        self.username = username
        self.password = password
        if token_cache is None:
            token_cache = TokenCache(
                ttl_seconds=getattr(settings, "TOKEN_CACHE_TTL_SECONDS", 3000)
            )
        self._tokens: TokenCache[str] = token_cache

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    @property
    def _cache_key(self) -> tuple[str, str]:
        return (self.base_url, self.username)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def login(self) -> str:
        """
        Log in and cache the access token.

        Raises:
            MarketplaceAuthError: If the credentials are rejected.
            MarketplaceAPIError: If the login endpoint fails otherwise.
        """
        try:
            response = await self._client.post(
                self._url(self.LOGIN_PATH),
                data={
                    "username": self.username,
                    "password": self.password,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.RequestError as e:
            raise MarketplaceAPIError(f"Marketplace login request failed: {e}") from e

        if response.status_code in (400, 401, 403):
            raise MarketplaceAuthError(
                f"Marketplace rejected login for {self.username}: {response.status_code}"
            )
        if response.is_error:
            raise MarketplaceAPIError(
                f"Marketplace login failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise MarketplaceAuthError("No access token in Marketplace login response")

        expires_in = data.get("expires_in")
        self._tokens.set(
            self._cache_key,
            token,
            ttl_seconds=float(expires_in) if expires_in else None,
        )
        logger.info("Logged in to Marketplace as %s", self.username)
        return token

    async def get_token(self) -> str:
        """Return the cached token, logging in if needed."""
        token = self._tokens.get(self._cache_key)
        if token is None:
            token = await self.login()
        return token

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    async def _send(self, method: str, path: str, token: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                self._url(path),
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                **kwargs,
            )
        except httpx.RequestError as e:
            raise MarketplaceAPIError(
                f"Marketplace request failed: {method} {path}: {e}"
            ) from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Make an authenticated request, re-logging in once on a 401.

        Raises:
            MarketplaceAuthError: If the request is still rejected after re-login.
            MarketplaceAPIError: On any other non-2xx response or transport failure.
        """
        response = await self._send(method, path, await self.get_token(), **kwargs)

        if response.status_code == 401:
            logger.warning(
                "Marketplace rejected token for %s, logging in again", self.username
            )
            self._tokens.invalidate(self._cache_key)
            response = await self._send(method, path, await self.login(), **kwargs)
            if response.status_code == 401:
                raise MarketplaceAuthError(
                    f"Marketplace rejected a fresh token: {method} {path}"
                )

        if response.is_error:
            logger.warning(
                "Marketplace API error: %s %s -> %d: %s",
                method,
                path,
                response.status_code,
                response.text[:500],
            )
            raise MarketplaceAPIError(
                f"Marketplace API request failed: {method} {path} -> {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        return response

    # =========================================================================
    # Catalog
    # =========================================================================

    async def submit_catalog(
        self, chain_code: str, payload: CatalogSubmissionPayload
    ) -> str:
        """
        Submit a catalog for asynchronous import.

        Args:
            chain_code: Marketplace chain the vendors belong to.
            payload: Catalog, vendor list and callback URL.

        Returns:
            The import id the status callback will reference.

        Raises:
            MarketplaceAPIError: If the submission fails or returns no import id.
        """
        path = self.CATALOG_PATH.format(chain_code=chain_code)
        response = await self._request("PUT", path, json=payload.to_wire())

        data = response.json() if response.content else {}
        import_id = data.get("importId") or data.get("catalogImportId")
        if not import_id:
            raise MarketplaceAPIError(
                "Marketplace catalog response has no import id",
                status_code=response.status_code,
                response_body=response.text,
            )

        logger.info(
            "Submitted catalog for chain %s (vendors=%s, import=%s)",
            chain_code,
            ",".join(payload.vendors),
            import_id,
        )
        return str(import_id)

    # =========================================================================
    # Availability
    # =========================================================================

    async def update_item_availability(
        self, vendor_code: str, payload: ItemAvailabilityPayload
    ) -> int:
        """
        Push availability for items the vendor already has.

        Returns:
            The number of items the Marketplace reports as updated.

        Raises:
            MarketplaceAPIError: If the update fails.
        """
        path = self.AVAILABILITY_PATH.format(vendor_code=vendor_code)
        response = await self._request("PUT", path, json=payload.to_wire())

        data = response.json() if response.content else {}
        updated = int(data.get("updatedCount") or len(payload.items))
        logger.info(
            "Updated availability for vendor %s (items=%d, updated=%d)",
            vendor_code,
            len(payload.items),
            updated,
        )
        return updated
