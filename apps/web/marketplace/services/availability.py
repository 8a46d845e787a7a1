"""
Availability-only sync.

Pushes current POS product availability to the Marketplace under the
products' existing remote codes. A product that was never published in a
catalog has no mapping and is skipped: this path never allocates codes.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings

from menusync_schemas import ItemAvailability, ItemAvailabilityPayload, POSProduct

from apps.web.core.cache import TokenCache
from apps.web.marketplace.client import MarketplaceClient
from apps.web.marketplace.models import DeadLetterEventType, EntityType
from apps.web.marketplace.services.dead_letter import DeadLetterEscalator
from apps.web.marketplace.services.failures import classify_failure, error_code_for
from apps.web.marketplace.services.registry import StableIdMappingRegistry
from apps.web.pos.services import CredentialService

if TYPE_CHECKING:
    from apps.web.core.models import MarketplaceVendor

logger = logging.getLogger(__name__)


def is_available(product: POSProduct, branch_id: str | None = None) -> bool:
    """A product is available if it is active, and active at the branch if one is given."""
    if not product.is_active:
        return False
    if branch_id is None:
        return True
    return any(b.external_id == branch_id and b.is_active for b in product.branches)


@dataclass
class AvailabilityUpdate:
    payload: ItemAvailabilityPayload
    unmapped: list[str] = field(default_factory=list)

    @property
    def available_count(self) -> int:
        return sum(1 for item in self.payload.items if item.is_available)


def build_availability_update(
    registry: StableIdMappingRegistry,
    products: list[POSProduct],
    branch_id: str | None = None,
) -> AvailabilityUpdate:
    """Map products to availability items through their existing mappings."""
    update = AvailabilityUpdate(payload=ItemAvailabilityPayload())
    for product in products:
        mapping = registry.lookup(EntityType.PRODUCT, product.external_id)
        if mapping is None or not mapping.is_active:
            logger.warning(
                "Product %s has no published remote code (account=%s), skipping",
                product.external_id,
                registry.account.pk,
            )
            update.unmapped.append(product.external_id)
            continue
        update.payload.items.append(
            ItemAvailability(
                remote_code=mapping.remote_code,
                is_available=is_available(product, branch_id),
            )
        )
    return update


@dataclass
class AvailabilitySyncResult:
    vendor_code: str
    items_count: int = 0
    available_count: int = 0
    updated_count: int = 0
    unmapped: list[str] = field(default_factory=list)


class AvailabilitySyncService:
    """
    Pushes product availability for a vendor.

    Usage:
        service = AvailabilitySyncService(CredentialService())
        result = service.sync_vendor(vendor)
    """

    def __init__(
        self,
        credentials: CredentialService,
        dead_letters: DeadLetterEscalator | None = None,
        client_factory: Callable[["MarketplaceVendor"], MarketplaceClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self.dead_letters = dead_letters or DeadLetterEscalator()
        self._tokens: TokenCache[str] = TokenCache(
            ttl_seconds=getattr(settings, "TOKEN_CACHE_TTL_SECONDS", 3000)
        )
        self._client_factory = client_factory or self._default_client

    def _default_client(self, vendor: "MarketplaceVendor") -> MarketplaceClient:
        return MarketplaceClient(vendor.username, vendor.password, token_cache=self._tokens)

    def sync_vendor(self, vendor: "MarketplaceVendor") -> AvailabilitySyncResult:
        """
        Fetch POS products and push their availability.

        Raises:
            MarketplaceError: If the update fails (also dead-lettered).
            POSError: If the POS catalog cannot be fetched.
        """
        account = vendor.pos_account
        branch_id = account.branch_id or None

        products = self.credentials.call_with_auth_refresh(
            account,
            lambda adapter, session: adapter.get_products(session, branch_id),
        )
        update = build_availability_update(
            StableIdMappingRegistry(account), products, branch_id
        )
        result = AvailabilitySyncResult(
            vendor_code=vendor.vendor_code,
            items_count=len(update.payload.items),
            available_count=update.available_count,
            unmapped=update.unmapped,
        )
        if not update.payload.items:
            logger.info(
                "No published products for vendor %s, nothing to update",
                vendor.vendor_code,
            )
            return result

        try:
            result.updated_count = asyncio.run(self._push(vendor, update.payload))
        except Exception as e:
            self.dead_letters.escalate(
                event_type=DeadLetterEventType.AVAILABILITY_UPDATE,
                correlation_id=str(uuid.uuid4()),
                original_message={
                    "vendor_code": vendor.vendor_code,
                    **update.payload.to_wire(),
                },
                error_code=error_code_for(e),
                error_message=str(e),
                failure_type=classify_failure(e),
                attempts=1,
                account=account,
                error=e,
            )
            raise

        logger.info(
            "Pushed availability for vendor %s: %d items, %d available, %d unmapped",
            vendor.vendor_code,
            result.items_count,
            result.available_count,
            len(result.unmapped),
        )
        return result

    async def _push(
        self, vendor: "MarketplaceVendor", payload: ItemAvailabilityPayload
    ) -> int:
        client = self._client_factory(vendor)
        try:
            return await client.update_item_availability(vendor.vendor_code, payload)
        finally:
            await client.close()
