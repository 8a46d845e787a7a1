"""
Catalog sync pipeline.

fetch POS products -> stage them -> build the graph -> skip if unchanged
-> submit to the Marketplace -> record the submission
"""

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings

from menusync_schemas import CatalogSubmissionPayload, POSProduct

from apps.web.core.cache import TokenCache
from apps.web.marketplace.client import MarketplaceClient
from apps.web.marketplace.models import DeadLetterEventType, StagedProduct
from apps.web.marketplace.services.catalog_builder import CatalogGraphBuilder
from apps.web.marketplace.services.dead_letter import DeadLetterEscalator
from apps.web.marketplace.services.failures import classify_failure, error_code_for
from apps.web.marketplace.services.idempotency import IdempotencyGuard
from apps.web.marketplace.services.registry import StableIdMappingRegistry
from apps.web.marketplace.services.sync_status import SyncStatusTracker
from apps.web.pos.services import CredentialService

if TYPE_CHECKING:
    from apps.web.core.models import MarketplaceVendor, POSAccount

logger = logging.getLogger(__name__)


def catalog_hash(payload: CatalogSubmissionPayload) -> str:
    """Content hash of a submission, stable across key order."""
    encoded = json.dumps(payload.to_wire(), sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


def stage_products(
    account: "POSAccount", vendor_code: str, products: list[POSProduct]
) -> int:
    """Upsert the fetched POS products into the vendor's StagedProduct rows."""
    for product in products:
        StagedProduct.objects.update_or_create(
            account=account,
            marketplace_vendor_code=vendor_code,
            pos_product_id=product.external_id,
            defaults={
                "name": product.name,
                "description": product.description,
                "image_url": product.image_url,
                "is_active": product.is_active,
                "category_id": product.category.external_id if product.category else "",
                "category_name": product.category.name if product.category else "",
                "price": product.price,
                "branch_ids": [b.external_id for b in product.branches],
                "payload": product.model_dump(mode="json"),
            },
        )
    return len(products)


@dataclass
class CatalogSyncResult:
    vendor_code: str
    skipped: bool = False
    import_id: str | None = None
    submission_id: object = None
    catalog_hash: str = ""
    products_count: int = 0
    warnings: list[str] = field(default_factory=list)


class CatalogSyncService:
    """
    Runs the catalog sync for a vendor.

    Usage:
        service = CatalogSyncService(CredentialService())
        result = service.sync_vendor(vendor)
    """

    def __init__(
        self,
        credentials: CredentialService,
        tracker: SyncStatusTracker | None = None,
        guard: IdempotencyGuard | None = None,
        dead_letters: DeadLetterEscalator | None = None,
        client_factory: Callable[["MarketplaceVendor"], MarketplaceClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self.tracker = tracker or SyncStatusTracker()
        self.guard = guard or IdempotencyGuard()
        self.dead_letters = dead_letters or DeadLetterEscalator()
        self._tokens: TokenCache[str] = TokenCache(
            ttl_seconds=getattr(settings, "TOKEN_CACHE_TTL_SECONDS", 3000)
        )
        self._client_factory = client_factory or self._default_client

    def _default_client(self, vendor: "MarketplaceVendor") -> MarketplaceClient:
        return MarketplaceClient(vendor.username, vendor.password, token_cache=self._tokens)

    def sync_vendor(
        self, vendor: "MarketplaceVendor", force: bool = False
    ) -> CatalogSyncResult:
        """
        Build and submit the vendor's catalog.

        An identical catalog already submitted within the idempotency
        retention window is skipped unless `force` is set.

        Raises:
            CatalogValidationError: If the built graph is invalid.
            MarketplaceError: If the submission fails (also dead-lettered).
            POSError: If the POS catalog cannot be fetched.
        """
        account = vendor.pos_account
        branch_id = account.branch_id or None

        products = self.credentials.call_with_auth_refresh(
            account,
            lambda adapter, session: adapter.get_products(session, branch_id),
        )
        stage_products(account, vendor.vendor_code, products)

        registry = StableIdMappingRegistry(account)
        build = CatalogGraphBuilder(
            registry, vendor_code=vendor.vendor_code, branch_id=branch_id
        ).build(products)
        registry.deactivate_missing(products)

        digest = catalog_hash(build.payload)
        result = CatalogSyncResult(
            vendor_code=vendor.vendor_code,
            catalog_hash=digest,
            products_count=build.products_count,
            warnings=build.warnings,
        )

        key = f"catalog:{vendor.vendor_code}:{digest[:16]}"
        if not force:
            can_process, record = self.guard.check_and_mark_started(account, key)
            if not can_process and self.guard.release_failed(account, key):
                # the last attempt failed, so the catalog is still unsent
                can_process, record = self.guard.check_and_mark_started(account, key)
            if not can_process:
                logger.info(
                    "Catalog for vendor %s unchanged since %s (status=%s), skipping",
                    vendor.vendor_code,
                    record.first_seen_at,
                    record.status,
                )
                result.skipped = True
                return result

        correlation_id = str(uuid.uuid4())
        try:
            import_id = asyncio.run(self._submit(vendor, build.payload))
        except Exception as e:
            if not force:
                self.guard.mark_failed(account, key, {"error": str(e)})
            self.dead_letters.escalate(
                event_type=DeadLetterEventType.CATALOG_SYNC,
                correlation_id=correlation_id,
                original_message={
                    "vendor_code": vendor.vendor_code,
                    "chain_code": vendor.chain_code,
                    "catalog_hash": digest,
                    "products_count": build.products_count,
                },
                error_code=error_code_for(e),
                error_message=str(e),
                failure_type=classify_failure(e),
                attempts=1,
                account=account,
                error=e,
            )
            raise

        submission = self.tracker.record_submission(
            account,
            vendor.vendor_code,
            import_id,
            chain_code=vendor.chain_code,
            correlation_id=correlation_id,
            callback_url=build.payload.callback_url,
            catalog_hash=digest,
            products_count=build.products_count,
            categories_count=build.categories_count,
            toppings_count=build.toppings_count,
        )
        if not force:
            self.guard.mark_succeeded(account, key, {"import_id": import_id})

        result.import_id = import_id
        result.submission_id = submission.pk
        return result

    async def _submit(
        self, vendor: "MarketplaceVendor", payload: CatalogSubmissionPayload
    ) -> str:
        client = self._client_factory(vendor)
        try:
            return await client.submit_catalog(vendor.chain_code, payload)
        finally:
            await client.close()
