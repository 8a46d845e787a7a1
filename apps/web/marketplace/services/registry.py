"""
Stable id mapping registry.

Maps POS entity ids to Marketplace remote codes. A code is allocated the
first time a key is seen and never changes afterwards; later syncs only
refresh metadata (display name, parent, structure hash, verification time).
"""

import hashlib
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, F, Q, QuerySet
from django.utils import timezone

from menusync_schemas import POSModifierOption, POSProduct

from apps.web.marketplace.models import EntityType, StableMapping

if TYPE_CHECKING:
    from apps.web.core.models import POSAccount

logger = logging.getLogger(__name__)

REMOTE_CODE_PREFIXES = {
    EntityType.PRODUCT: "P",
    EntityType.CATEGORY: "C",
    EntityType.MODIFIER: "M",
    EntityType.MODIFIER_OPTION: "O",
    EntityType.GROUP: "G",
}

MappingKey = tuple[str, str]  # (entity_type, pos_id)


def allocate_remote_code(
    account_id: Any, branch_id: str, entity_type: str, pos_id: str
) -> str:
    """
    Derive an opaque remote code for a mapping key.

    Only used when the key has no mapping yet. Once persisted, the stored
    code is authoritative.
    """
    digest = hashlib.sha1(
        f"{account_id}:{branch_id}:{entity_type}:{pos_id}".encode()
    ).hexdigest()[:16]
    return f"{REMOTE_CODE_PREFIXES[EntityType(entity_type)]}-{digest}"


def _hash(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


@dataclass
class MappingRequest:
    """One entity to map, with the metadata to record for it."""

    entity_type: str
    pos_id: str
    display_name: str = ""
    parent_key: MappingKey | None = None
    structure_hash: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> MappingKey:
        return (self.entity_type, self.pos_id)


@dataclass
class BulkMappingResult:
    """
    Outcome of a bulk mapping pass.

    Keys that could not be persisted are absent from `codes` and listed in
    `failures`; callers skip those items.
    """

    codes: dict[MappingKey, str] = field(default_factory=dict)
    created: int = 0
    updated: int = 0
    failures: dict[MappingKey, str] = field(default_factory=dict)

    def get(self, entity_type: str, pos_id: str) -> str | None:
        return self.codes.get((entity_type, pos_id))


def collect_mapping_requests(products: list[POSProduct]) -> dict[MappingKey, MappingRequest]:
    """
    Gather every mappable entity reachable from a product list.

    Nested option children are walked with a worklist. The first occurrence
    of a key wins.
    """
    requests: dict[MappingKey, MappingRequest] = {}

    def add(request: MappingRequest) -> None:
        requests.setdefault(request.key, request)

    for product in products:
        category_key: MappingKey | None = None
        if product.category:
            category_key = (EntityType.CATEGORY.value, product.category.external_id)
            add(
                MappingRequest(
                    entity_type=EntityType.CATEGORY,
                    pos_id=product.category.external_id,
                    display_name=product.category.name,
                )
            )

        for group in product.groups:
            add(
                MappingRequest(
                    entity_type=EntityType.GROUP,
                    pos_id=group.external_id,
                    display_name=group.name,
                )
            )

        add(
            MappingRequest(
                entity_type=EntityType.PRODUCT,
                pos_id=product.external_id,
                display_name=product.name,
                parent_key=category_key,
                structure_hash=_hash(product.model_dump_json()),
                metadata={
                    "price": str(product.price) if product.price is not None else None,
                    "sku": product.sku,
                },
            )
        )

        for modifier in product.modifier_groups:
            modifier_key = (EntityType.MODIFIER.value, modifier.external_id)
            add(
                MappingRequest(
                    entity_type=EntityType.MODIFIER,
                    pos_id=modifier.external_id,
                    display_name=modifier.name,
                    structure_hash=_hash(modifier.model_dump_json()),
                    metadata={
                        "min_allowed": modifier.min_allowed,
                        "max_allowed": modifier.max_allowed,
                    },
                )
            )

            pending: deque[POSModifierOption] = deque(modifier.options)
            while pending:
                option = pending.popleft()
                add(
                    MappingRequest(
                        entity_type=EntityType.MODIFIER_OPTION,
                        pos_id=option.external_id,
                        display_name=option.name,
                        parent_key=modifier_key,
                        metadata={"price": str(option.price)},
                    )
                )
                pending.extend(option.children)

    return requests


class StableIdMappingRegistry:
    """
    Registry of stable mappings for one POS account and branch scope.

    Usage:
        registry = StableIdMappingRegistry(account)
        code = registry.get_or_create(EntityType.PRODUCT, "123", "Burger")
        result = registry.bulk_get_or_create(products)
    """

    def __init__(self, account: "POSAccount", branch_id: str | None = None) -> None:
        self.account = account
        self.branch_id = branch_id or ""

    def _scope(self) -> QuerySet[StableMapping]:
        return StableMapping.objects.for_account(self.account).filter(
            branch_id=self.branch_id
        )

    # =========================================================================
    # Single key
    # =========================================================================

    def get_or_create(
        self,
        entity_type: str,
        pos_id: str,
        display_name: str = "",
        *,
        parent: StableMapping | None = None,
        structure_hash: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Return the remote code for a key, allocating it on first use.

        A concurrent insert of the same key is resolved by re-reading the
        winner's row.

        Returns:
            The remote code, identical on every call for the same key.
        """
        now = timezone.now()
        mapping = self._scope().filter(entity_type=entity_type, pos_id=pos_id).first()

        if mapping is None:
            try:
                with transaction.atomic():
                    mapping = StableMapping.objects.create(
                        account=self.account,
                        branch_id=self.branch_id,
                        entity_type=entity_type,
                        pos_id=pos_id,
                        remote_code=allocate_remote_code(
                            self.account.pk, self.branch_id, entity_type, pos_id
                        ),
                        display_name=display_name,
                        parent=parent,
                        structure_hash=structure_hash,
                        metadata=metadata or {},
                        first_synced_at=now,
                        last_verified_at=now,
                    )
                logger.info(
                    "Allocated remote code %s for %s:%s (account=%s)",
                    mapping.remote_code,
                    entity_type,
                    pos_id,
                    self.account.pk,
                )
                return mapping.remote_code
            except IntegrityError:
                mapping = self._scope().get(entity_type=entity_type, pos_id=pos_id)

        update: dict[str, Any] = {
            "is_active": True,
            "last_verified_at": now,
            "sync_count": F("sync_count") + 1,
        }
        if display_name:
            update["display_name"] = display_name
        if parent is not None:
            update["parent"] = parent
        if structure_hash:
            update["structure_hash"] = structure_hash
        if metadata is not None:
            update["metadata"] = metadata
        StableMapping.objects.filter(pk=mapping.pk).update(**update)

        return mapping.remote_code

    def lookup(self, entity_type: str, pos_id: str) -> StableMapping | None:
        """Return an existing mapping without ever allocating one."""
        return self._scope().filter(entity_type=entity_type, pos_id=pos_id).first()

    def lookup_by_remote_code(
        self, remote_code: str, entity_type: str | None = None
    ) -> StableMapping | None:
        """Reverse lookup across every branch scope of the account."""
        mappings = StableMapping.objects.for_account(self.account).filter(
            remote_code=remote_code
        )
        if entity_type:
            mappings = mappings.filter(entity_type=entity_type)
        return mappings.first()

    # =========================================================================
    # Bulk
    # =========================================================================

    def bulk_get_or_create(self, products: list[POSProduct]) -> BulkMappingResult:
        """
        Map every product, category, group, modifier and option in one pass.

        New keys are inserted with one bulk insert. If that insert conflicts
        (a concurrent sync got there first), each new key falls back to its
        own savepoint insert with read-after-conflict. A key that still fails
        is reported in `failures` and the rest of the batch is kept.
        """
        requests = collect_mapping_requests(products)
        result = BulkMappingResult()
        if not requests:
            return result

        now = timezone.now()
        mappings: dict[MappingKey, StableMapping] = {}
        pos_ids = {pos_id for _, pos_id in requests}
        for mapping in self._scope().filter(pos_id__in=pos_ids):
            key = (mapping.entity_type, mapping.pos_id)
            if key in requests:
                mappings[key] = mapping

        existing_keys = set(mappings)
        new_rows = [
            StableMapping(
                account=self.account,
                branch_id=self.branch_id,
                entity_type=request.entity_type,
                pos_id=request.pos_id,
                remote_code=allocate_remote_code(
                    self.account.pk, self.branch_id, request.entity_type, request.pos_id
                ),
                display_name=request.display_name,
                structure_hash=request.structure_hash,
                metadata=request.metadata,
                first_synced_at=now,
                last_verified_at=now,
            )
            for key, request in requests.items()
            if key not in mappings
        ]

        if new_rows:
            try:
                with transaction.atomic():
                    StableMapping.objects.bulk_create(new_rows)
                for row in new_rows:
                    mappings[(row.entity_type, row.pos_id)] = row
                result.created = len(new_rows)
            except IntegrityError:
                logger.warning(
                    "Bulk mapping insert conflicted for account %s, "
                    "falling back to per-key inserts",
                    self.account.pk,
                )
                self._insert_individually(new_rows, requests, mappings, result)

        # Refresh metadata and parent links on everything we hold
        touched: list[StableMapping] = []
        for key, request in requests.items():
            mapping = mappings.get(key)
            if mapping is None:
                continue
            parent = mappings.get(request.parent_key) if request.parent_key else None
            if parent is not None:
                mapping.parent = parent
            if key in existing_keys:
                mapping.display_name = request.display_name or mapping.display_name
                mapping.structure_hash = request.structure_hash or mapping.structure_hash
                mapping.metadata = request.metadata or mapping.metadata
                mapping.is_active = True
                mapping.last_verified_at = now
                mapping.sync_count += 1
                result.updated += 1
            touched.append(mapping)
            result.codes[key] = mapping.remote_code

        try:
            StableMapping.objects.bulk_update(
                touched,
                [
                    "display_name",
                    "parent",
                    "is_active",
                    "last_verified_at",
                    "sync_count",
                    "structure_hash",
                    "metadata",
                ],
            )
        except DatabaseError:
            # Codes are already committed; only the metadata refresh is lost
            logger.exception(
                "Failed to refresh mapping metadata for account %s", self.account.pk
            )

        logger.info(
            "Mapped %d entities for account %s (created=%d, updated=%d, failed=%d)",
            len(result.codes),
            self.account.pk,
            result.created,
            result.updated,
            len(result.failures),
        )
        return result

    def _insert_individually(
        self,
        rows: list[StableMapping],
        requests: dict[MappingKey, MappingRequest],
        mappings: dict[MappingKey, StableMapping],
        result: BulkMappingResult,
    ) -> None:
        for row in rows:
            key = (row.entity_type, row.pos_id)
            try:
                with transaction.atomic():
                    row.save(force_insert=True)
                mappings[key] = row
                result.created += 1
            except IntegrityError:
                winner = self._scope().filter(
                    entity_type=row.entity_type, pos_id=row.pos_id
                ).first()
                if winner is None:
                    result.failures[key] = "remote code conflict"
                    logger.error(
                        "Could not map %s:%s for account %s: remote code conflict",
                        row.entity_type,
                        row.pos_id,
                        self.account.pk,
                    )
                    continue
                mappings[key] = winner
                result.updated += 1
            except DatabaseError as e:
                result.failures[key] = str(e)
                logger.exception(
                    "Could not map %s:%s for account %s",
                    row.entity_type,
                    row.pos_id,
                    self.account.pk,
                )

        # Rows re-read after a conflict still need their requested display name
        for key, request in requests.items():
            mapping = mappings.get(key)
            if mapping is not None and not mapping.display_name:
                mapping.display_name = request.display_name

    # =========================================================================
    # Maintenance
    # =========================================================================

    def deactivate_missing(self, products: list[POSProduct]) -> int:
        """
        Mark mappings for entities absent from the latest fetch inactive.

        They are reactivated (with the same code) when the entity returns.

        Returns:
            Number of mappings deactivated.
        """
        seen = set(collect_mapping_requests(products))
        stale_ids = [
            pk
            for pk, entity_type, pos_id in self._scope()
            .filter(is_active=True)
            .values_list("pk", "entity_type", "pos_id")
            if (entity_type, pos_id) not in seen
        ]
        if not stale_ids:
            return 0

        count = StableMapping.objects.filter(pk__in=stale_ids).update(is_active=False)
        logger.info(
            "Deactivated %d mappings missing from the POS catalog (account=%s)",
            count,
            self.account.pk,
        )
        return count

    def statistics(self) -> dict[str, Any]:
        """Mapping counts for the account, by entity type."""
        rows = (
            StableMapping.objects.for_account(self.account)
            .values("entity_type")
            .annotate(
                total=Count("id"),
                active=Count("id", filter=Q(is_active=True)),
            )
        )
        by_type = {
            row["entity_type"]: {"total": row["total"], "active": row["active"]}
            for row in rows
        }
        return {
            "total": sum(v["total"] for v in by_type.values()),
            "active": sum(v["active"] for v in by_type.values()),
            "by_type": by_type,
        }


def cleanup_inactive_mappings(retention_days: int | None = None) -> int:
    """
    Delete inactive mappings not verified within the retention window.

    Returns:
        Number of mappings deleted.
    """
    days = retention_days or getattr(settings, "MAPPING_RETENTION_DAYS", 90)
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = StableMapping.objects.filter(
        is_active=False, last_verified_at__lt=cutoff
    ).delete()
    if deleted:
        logger.info("Deleted %d inactive mappings older than %d days", deleted, days)
    return deleted
