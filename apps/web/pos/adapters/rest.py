"""REST POS adapter - integration with the POS platform's public API."""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Any

from django.conf import settings

import httpx
from menusync_schemas import (
    POSBranch,
    POSCategory,
    POSCredentials,
    POSGroup,
    POSModifierGroup,
    POSModifierOption,
    POSOrderRequest,
    POSOrderResult,
    POSProduct,
    POSProvider,
    POSSession,
)

from apps.web.pos.exceptions import (
    POSAPIError,
    POSAuthError,
    POSConnectionError,
    POSOrderError,
    POSRateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.pos.invalid/v5"

PRODUCT_INCLUDES = ",".join(
    [
        "category",
        "tax_group",
        "tags",
        "groups",
        "branches",
        "modifiers",
        "modifiers.options",
        "modifiers.options.branches",
    ]
)


def parse_retry_after(value: str | None) -> int | None:
    """
    Seconds to wait from a Retry-After header.

    Accepts both forms HTTP allows: delta-seconds and an HTTP-date. Returns
    None when the header is missing or unreadable.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable Retry-After header: %r", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


class RestPOSAdapter:
    """
    REST POS adapter implementing the POSAdapter protocol.

    Talks to the POS platform's v5-style API:
    - OAuth client-credentials (or a static API token)
    - Paginated product catalog with modifiers and branches
    - Order creation

    Requests are single-shot with a request-scoped timeout. Retrying is the
    caller's job; failures are mapped onto the POS exception hierarchy so
    they can be classified as transient or permanent.
    """

    TOKEN_PATH = "oauth/token"
    PRODUCTS_PATH = "products"
    ORDERS_PATH = "orders"

    # Safety bound on catalog pagination
    MAX_PAGES = 200

    # Lifetime given to sessions backed by a static API token
    STATIC_TOKEN_LIFETIME = timedelta(days=365)

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ) -> None:
        """
        Initialize the REST adapter.

        Args:
            http_client: Optional HTTP client for dependency injection (testing).
            base_url: API root; defaults to settings.POS_API_BASE_URL.
        """
        timeout = getattr(settings, "HTTP_TIMEOUT_SECONDS", 30.0)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        root = base_url or getattr(settings, "POS_API_BASE_URL", DEFAULT_BASE_URL)
        self.base_url = root.rstrip("/")

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def provider(self) -> POSProvider:
        """The POS provider this adapter connects to."""
        return POSProvider.REST

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, credentials: POSCredentials) -> POSSession:
        """
        Authenticate with client credentials, or wrap a static API token.

        Args:
            credentials: Account credentials.

        Returns:
            Authenticated session.

        Raises:
            POSAuthError: If the credentials are rejected.
            POSConnectionError: If the token endpoint cannot be reached.
        """
        if credentials.access_token:
            return POSSession(
                provider=POSProvider.REST,
                access_token=credentials.access_token,
                refresh_token=None,
                expires_at=datetime.now(UTC) + self.STATIC_TOKEN_LIFETIME,
            )

        return await self._request_token(
            {
                "grant_type": "client_credentials",
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
            }
        )

    async def refresh_token(self, session: POSSession) -> POSSession:
        """
        Exchange a refresh token for a new access token.

        Raises:
            POSAuthError: If the session has no refresh token or it is rejected.
        """
        if not session.refresh_token:
            raise POSAuthError(
                "Session has no refresh token. Re-authenticate instead.",
                provider="rest",
            )

        return await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": session.refresh_token}
        )

    async def _request_token(self, body: dict[str, str]) -> POSSession:
        try:
            response = await self._client.post(self._url(self.TOKEN_PATH), json=body)
        except httpx.RequestError as e:
            raise POSConnectionError(
                f"POS token request failed: {e}", provider="rest"
            ) from e

        if response.status_code in (400, 401, 403):
            raise POSAuthError(
                "POS rejected the credentials",
                provider="rest",
                status_code=response.status_code,
            )
        if response.is_error:
            raise POSAPIError(
                f"POS token request failed: {response.status_code}",
                provider="rest",
                status_code=response.status_code,
                response_body=response.text,
            )

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            raise POSAuthError("No access token in POS response", provider="rest")

        expires_in = int(data.get("expires_in") or 3600)
        return POSSession(
            provider=POSProvider.REST,
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        )

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        session: POSSession,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make one authenticated request and map failures to POS exceptions.

        Raises:
            POSAuthError: On 401/403.
            POSRateLimitError: On 429.
            POSAPIError: On any other non-2xx status.
            POSConnectionError: On timeouts and transport errors.
        """
        headers = {
            "Authorization": f"Bearer {session.access_token}",
            "Accept": "application/json",
            **kwargs.pop("headers", {}),
        }

        try:
            response = await self._client.request(
                method, self._url(path), headers=headers, **kwargs
            )
        except httpx.TimeoutException as e:
            raise POSConnectionError(
                f"POS request timed out: {method} {path}", provider="rest"
            ) from e
        except httpx.RequestError as e:
            raise POSConnectionError(
                f"POS request failed: {method} {path}: {e}", provider="rest"
            ) from e

        if response.status_code == 429:
            raise POSRateLimitError(
                "POS rate limit exceeded",
                provider="rest",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        if response.status_code in (401, 403):
            raise POSAuthError(
                f"POS rejected the access token: {response.status_code}",
                provider="rest",
                status_code=response.status_code,
            )

        if response.is_error:
            logger.warning(
                "POS API error: %s %s -> %d: %s",
                method,
                path,
                response.status_code,
                response.text[:500],
            )
            raise POSAPIError(
                f"POS API request failed: {method} {path} -> {response.status_code}",
                provider="rest",
                status_code=response.status_code,
                response_body=response.text,
            )

        return response

    # =========================================================================
    # Catalog
    # =========================================================================

    async def get_products(
        self, session: POSSession, branch_id: str | None = None
    ) -> list[POSProduct]:
        """
        Fetch every product page and parse the aggregates.

        Args:
            session: Authenticated session.
            branch_id: Restrict to products sold at this branch (None = all).

        Returns:
            Product aggregates.
        """
        products: list[POSProduct] = []
        page = 1

        while page <= self.MAX_PAGES:
            params: dict[str, Any] = {"include": PRODUCT_INCLUDES, "page": page}
            if branch_id:
                params["filter[branches.id]"] = branch_id

            response = await self._request(
                "GET", self.PRODUCTS_PATH, session, params=params
            )
            body = response.json()
            products.extend(self._parse_product(raw) for raw in body.get("data", []))

            meta = body.get("meta") or {}
            last_page = int(meta.get("last_page") or page)
            if page >= last_page:
                break
            page += 1

        logger.info(
            "Fetched %d POS products (branch=%s, pages=%d)",
            len(products),
            branch_id or "<all>",
            page,
        )
        return products

    def _parse_product(self, data: dict[str, Any]) -> POSProduct:
        """Parse a product aggregate from the API shape."""
        category = data.get("category")
        tax_group = data.get("tax_group") or {}

        return POSProduct(
            external_id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            price=_to_decimal(data.get("price")),
            image_url=data.get("image") or "",
            is_active=bool(data.get("is_active", True)),
            sku=data.get("sku") or "",
            category=(
                POSCategory(external_id=str(category["id"]), name=category.get("name") or "")
                if category
                else None
            ),
            tax_rate=_to_decimal(tax_group.get("rate")),
            groups=[
                POSGroup(external_id=str(g["id"]), name=g.get("name") or "")
                for g in data.get("groups") or []
            ],
            branches=[self._parse_branch(b) for b in data.get("branches") or []],
            modifier_groups=[
                self._parse_modifier(m) for m in data.get("modifiers") or []
            ],
        )

    def _parse_branch(self, data: dict[str, Any]) -> POSBranch:
        pivot = data.get("pivot") or {}
        return POSBranch(
            external_id=str(data["id"]),
            name=data.get("name") or "",
            is_active=bool(pivot.get("is_active", data.get("is_active", True))),
        )

    def _parse_modifier(self, data: dict[str, Any]) -> POSModifierGroup:
        pivot = data.get("pivot") or {}
        minimum = data.get("min_allowed", pivot.get("minimum_options"))
        maximum = data.get("max_allowed", pivot.get("maximum_options"))
        return POSModifierGroup(
            external_id=str(data["id"]),
            name=data.get("name") or "",
            min_allowed=int(minimum) if minimum is not None else None,
            max_allowed=int(maximum) if maximum is not None else None,
            options=[self._parse_option(o) for o in data.get("options") or []],
        )

    def _parse_option(self, data: dict[str, Any]) -> POSModifierOption:
        branches = data.get("branches")
        return POSModifierOption(
            external_id=str(data["id"]),
            name=data.get("name") or "",
            price=_to_decimal(data.get("price")) or Decimal("0"),
            image_url=data.get("image") or "",
            is_active=bool(data.get("is_active", True)) and not data.get("deleted_at"),
            branch_ids=(
                [str(b["id"]) for b in branches] if branches is not None else None
            ),
            children=[self._parse_option(c) for c in data.get("children") or []],
        )

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self, session: POSSession, order: POSOrderRequest
    ) -> POSOrderResult:
        """
        Create an order in the POS.

        Raises:
            POSOrderError: If the POS rejects the order body (422).
        """
        logger.info(
            "Creating POS order: branch=%s business_date=%s due_at=%s products=%d",
            order.branch_id,
            order.business_date,
            order.due_at,
            len(order.products),
        )

        try:
            response = await self._request(
                "POST",
                self.ORDERS_PATH,
                session,
                json=order.model_dump(mode="json", exclude_none=True),
            )
        except POSAPIError as e:
            if e.status_code == 422:
                raise POSOrderError(
                    f"POS rejected the order: {e.response_body}",
                    provider="rest",
                    order_id=order.meta.get("marketplace_code"),
                ) from e
            raise

        data = response.json().get("data") or {}
        if not data.get("id"):
            raise POSOrderError(
                "POS order response has no order id",
                provider="rest",
                order_id=order.meta.get("marketplace_code"),
            )

        return POSOrderResult(
            external_id=str(data["id"]),
            reference=str(data["reference"]) if data.get("reference") else None,
            status=data.get("status"),
            raw=data,
        )


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
