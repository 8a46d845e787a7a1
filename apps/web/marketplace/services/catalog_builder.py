"""
Catalog graph builder.

Turns POS product aggregates into the Marketplace's flat item graph:

- every product becomes a Product item (plus an Image item when its image
  URL is allowed)
- every modifier group with available options becomes a Topping item whose
  options are Product items of their own
- every option product is also listed in the reserved hidden category,
  because the Marketplace rejects Topping products no Category references
- products are grouped into Category items (optionally also by POS group)
- one ScheduleEntry and one Menu referencing every category close the graph

The finished graph is validated before anything is submitted: a required
modifier group that cannot be satisfied, a dangling reference, a duplicate
id, or a missing menu rejects the whole catalog.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.conf import settings

from menusync_schemas import (
    Catalog,
    CatalogSubmissionPayload,
    CategoryItem,
    ImageItem,
    ItemReference,
    LocalizedText,
    MenuItem,
    POSModifierGroup,
    POSModifierOption,
    POSProduct,
    ProductItem,
    ScheduleEntryItem,
    SelectionQuantity,
    ToppingItem,
)

from apps.web.marketplace.exceptions import CatalogValidationError
from apps.web.marketplace.models import EntityType
from apps.web.marketplace.services.registry import (
    BulkMappingResult,
    StableIdMappingRegistry,
)
from apps.web.marketplace.services.url_policy import (
    sanitize_callback_url,
    sanitize_image_url,
)

logger = logging.getLogger(__name__)

HIDDEN_CATEGORY_ID = "Category#hiddenId"
HIDDEN_CATEGORY_ORDER = 999
UNCATEGORIZED_ID = "Category#uncategorized"
UNCATEGORIZED_TITLE = "Other Items"

SCHEDULE_ID = "schedule-01"
SCHEDULE_START = "08:00:00"
SCHEDULE_END = "23:59:00"
WEEK_DAYS = [
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
]

MENU_ID = "Menu_01"
MENU_TITLE = "POS Menu"
MENU_TYPE = "DELIVERY"

CALLBACK_PATH = "/catalog-status"


def format_price(value: Decimal | None) -> str:
    """Two-decimal price string; missing prices become 0.00."""
    if value is None:
        return "0.00"
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def category_item_id(code: str) -> str:
    return f"Category#{code}"


def topping_item_id(code: str) -> str:
    return f"tt-{code}"


def option_item_id(code: str) -> str:
    return f"topping-{code}"


def image_item_id(code: str) -> str:
    return f"image-{code}"


@dataclass
class CatalogBuildResult:
    """A built catalog ready for submission, with build diagnostics."""

    payload: CatalogSubmissionPayload
    products_count: int = 0
    categories_count: int = 0
    toppings_count: int = 0
    skipped_products: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def items(self) -> dict[str, Any]:
        return self.payload.catalog.items


def iter_references(item: Any) -> list[ItemReference]:
    """All outgoing edges of a catalog item."""
    refs: list[ItemReference] = []
    for attr in ("images", "toppings", "products", "schedule"):
        refs.extend(getattr(item, attr, {}).values())
    return refs


def validate_catalog(items: dict[str, Any]) -> list[str]:
    """
    Check the structural rules of a finished graph.

    Returns:
        Human-readable violations; empty if the graph is valid.
    """
    errors: list[str] = []

    for item_id, item in items.items():
        if item.id != item_id:
            errors.append(f"Item key {item_id!r} does not match its id {item.id!r}")
        for ref in iter_references(item):
            target = items.get(ref.id)
            if target is None:
                errors.append(f"{item.type} {item_id!r} references missing {ref.type} {ref.id!r}")
            elif target.type != ref.type:
                errors.append(
                    f"{item.type} {item_id!r} references {ref.id!r} as {ref.type}, "
                    f"but it is a {target.type}"
                )

    if not any(item.type == "Menu" for item in items.values()):
        errors.append("Catalog has no Menu item")

    category_members = {
        ref.id
        for item in items.values()
        if item.type == "Category"
        for ref in item.products.values()
    }
    for item in items.values():
        if item.type != "Topping":
            continue
        for ref in item.products.values():
            if ref.id not in category_members:
                errors.append(
                    f"Topping product {ref.id!r} is not referenced by any category"
                )

    return errors


class CatalogGraphBuilder:
    """
    Builds a Marketplace catalog from POS products.

    Usage:
        builder = CatalogGraphBuilder(StableIdMappingRegistry(account), vendor_code="v-1")
        result = builder.build(products)
        client.submit_catalog(chain_code, result.payload)
    """

    def __init__(
        self,
        registry: StableIdMappingRegistry,
        vendor_code: str | None = None,
        branch_id: str | None = None,
        callback_base_url: str | None = None,
    ) -> None:
        """
        Args:
            registry: Stable id registry for the account being synced.
            vendor_code: Vendor the catalog is submitted for. Falls back to
                settings.MARKETPLACE_DEFAULT_VENDOR_CODE.
            branch_id: Drop options not sold at this branch (None = keep all).
            callback_base_url: Import-status callback root. Falls back to
                settings.MARKETPLACE_CALLBACK_BASE_URL.
        """
        self.registry = registry
        self.vendor_code = vendor_code or getattr(
            settings, "MARKETPLACE_DEFAULT_VENDOR_CODE", ""
        )
        self.branch_id = branch_id
        self.callback_base_url = (
            callback_base_url
            if callback_base_url is not None
            else getattr(settings, "MARKETPLACE_CALLBACK_BASE_URL", "")
        )
        self.groups_enabled = getattr(settings, "MARKETPLACE_MENU_GROUPS_ENABLED", False)
        self.groups_sort_order = getattr(
            settings, "MARKETPLACE_MENU_GROUPS_SORT_ORDER", "after"
        )
        self.group_prefix = getattr(
            settings, "MARKETPLACE_MENU_GROUPS_CATEGORY_PREFIX", "group-"
        )

    def build(self, products: list[POSProduct]) -> CatalogBuildResult:
        """
        Build and validate the catalog graph.

        Args:
            products: POS product aggregates.

        Returns:
            The submission payload and build diagnostics.

        Raises:
            CatalogValidationError: If the graph breaks a structural rule.
        """
        mapping = self.registry.bulk_get_or_create(products)

        items: dict[str, Any] = {}
        errors: list[str] = []
        warnings: list[str] = []
        skipped: list[str] = []

        categories: dict[str, tuple[str, list[str]]] = {}
        group_categories: dict[str, tuple[str, list[str]]] = {}
        hidden_members: list[str] = []

        for product in products:
            code = mapping.get(EntityType.PRODUCT, product.external_id)
            if code is None:
                message = f"Product {product.external_id} ({product.name}) has no stable mapping, skipped"
                logger.warning(message)
                warnings.append(message)
                skipped.append(product.external_id)
                continue

            product_item = ProductItem(
                id=code,
                title=LocalizedText(default=product.name),
                description=LocalizedText(default=product.description)
                if product.description
                else None,
                price=format_price(product.price),
                active=product.is_active,
            )
            self._attach_image(product_item, code, product.image_url, items, errors)

            for position, modifier in enumerate(product.modifier_groups):
                topping_id = self._build_topping(
                    product, modifier, mapping, items, hidden_members, errors, warnings
                )
                if topping_id is not None:
                    product_item.toppings[topping_id] = ItemReference(
                        id=topping_id, type="Topping", order=position
                    )

            self._add(items, product_item, errors)

            category_id, title = self._category_for(product, mapping)
            categories.setdefault(category_id, (title, []))[1].append(code)

            if self.groups_enabled:
                for group in product.groups:
                    group_code = mapping.get(EntityType.GROUP, group.external_id)
                    if group_code is None:
                        continue
                    group_id = category_item_id(f"{self.group_prefix}{group_code}")
                    group_categories.setdefault(group_id, (group.name, []))[1].append(code)

        if errors:
            raise CatalogValidationError(errors)

        ordered = list(categories.items())
        if self.groups_sort_order == "before":
            ordered = list(group_categories.items()) + ordered
        else:
            ordered = ordered + list(group_categories.items())

        category_ids: list[str] = []
        for position, (category_id, (title, members)) in enumerate(ordered):
            self._add(
                items,
                CategoryItem(
                    id=category_id,
                    title=LocalizedText(default=title),
                    order=position,
                    products={
                        member: ItemReference(id=member, type="Product", order=i)
                        for i, member in enumerate(members)
                    },
                ),
                errors,
            )
            category_ids.append(category_id)

        if hidden_members:
            self._add(
                items,
                CategoryItem(
                    id=HIDDEN_CATEGORY_ID,
                    title=LocalizedText(default="hidden"),
                    description=LocalizedText(default="hidden"),
                    order=HIDDEN_CATEGORY_ORDER,
                    products={
                        member: ItemReference(id=member, type="Product", order=i)
                        for i, member in enumerate(hidden_members)
                    },
                ),
                errors,
            )
            category_ids.append(HIDDEN_CATEGORY_ID)

        self._add(
            items,
            ScheduleEntryItem(
                id=SCHEDULE_ID,
                start_time=SCHEDULE_START,
                end_time=SCHEDULE_END,
                week_days=list(WEEK_DAYS),
            ),
            errors,
        )
        self._add(
            items,
            MenuItem(
                id=MENU_ID,
                title=LocalizedText(default=MENU_TITLE),
                menu_type=MENU_TYPE,
                schedule={SCHEDULE_ID: ItemReference(id=SCHEDULE_ID, type="ScheduleEntry")},
                products={
                    category_id: ItemReference(id=category_id, type="Category", order=i)
                    for i, category_id in enumerate(category_ids)
                },
            ),
            errors,
        )

        errors.extend(validate_catalog(items))
        if errors:
            raise CatalogValidationError(errors)

        payload = CatalogSubmissionPayload(
            catalog=Catalog(items=items),
            vendors=[self.vendor_code] if self.vendor_code else [],
            callback_url=self._callback_url(),
        )

        result = CatalogBuildResult(
            payload=payload,
            products_count=len(products) - len(skipped),
            categories_count=len(category_ids),
            toppings_count=sum(1 for item in items.values() if item.type == "Topping"),
            skipped_products=skipped,
            warnings=warnings,
        )
        logger.info(
            "Built catalog for vendor %s: %d items, %d products, %d categories, "
            "%d toppings, %d skipped",
            self.vendor_code or "<none>",
            len(items),
            result.products_count,
            result.categories_count,
            result.toppings_count,
            len(skipped),
        )
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _add(self, items: dict[str, Any], item: Any, errors: list[str]) -> None:
        existing = items.get(item.id)
        if existing is None:
            items[item.id] = item
        elif existing.type != item.type:
            errors.append(
                f"Duplicate item id {item.id!r} used by {existing.type} and {item.type}"
            )

    def _attach_image(
        self,
        owner: ProductItem,
        code: str,
        url: str,
        items: dict[str, Any],
        errors: list[str],
    ) -> None:
        image_url = sanitize_image_url(url)
        if image_url is None:
            return
        image_id = image_item_id(code)
        self._add(items, ImageItem(id=image_id, url=image_url), errors)
        owner.images[image_id] = ItemReference(id=image_id, type="Image")

    def _category_for(
        self, product: POSProduct, mapping: BulkMappingResult
    ) -> tuple[str, str]:
        if product.category:
            code = mapping.get(EntityType.CATEGORY, product.category.external_id)
            if code is not None:
                return category_item_id(code), product.category.name
        return UNCATEGORIZED_ID, UNCATEGORIZED_TITLE

    def _available_options(self, modifier: POSModifierGroup) -> list[POSModifierOption]:
        """Flatten nested options, keeping active ones sold at the branch."""
        available: list[POSModifierOption] = []
        seen: set[str] = set()
        pending: deque[POSModifierOption] = deque(modifier.options)
        while pending:
            option = pending.popleft()
            if option.external_id in seen or not option.is_active:
                continue
            if (
                self.branch_id is not None
                and option.branch_ids is not None
                and self.branch_id not in option.branch_ids
            ):
                continue
            seen.add(option.external_id)
            available.append(option)
            pending.extend(option.children)
        return available

    def _build_topping(
        self,
        product: POSProduct,
        modifier: POSModifierGroup,
        mapping: BulkMappingResult,
        items: dict[str, Any],
        hidden_members: list[str],
        errors: list[str],
        warnings: list[str],
    ) -> str | None:
        """
        Emit the Topping for a modifier group, returning its id.

        Returns None for an optional group with nothing to offer. A required
        group that cannot be satisfied is recorded in `errors`.
        """
        minimum = modifier.min_allowed or 0
        label = f"modifier group {modifier.name!r} ({modifier.external_id}) on product {product.external_id}"

        code = mapping.get(EntityType.MODIFIER, modifier.external_id)
        if code is None:
            if minimum > 0:
                errors.append(f"Required {label} has no stable mapping")
            else:
                warnings.append(f"Optional {label} has no stable mapping, skipped")
            return None

        options: list[tuple[str, POSModifierOption]] = []
        for option in self._available_options(modifier):
            option_code = mapping.get(EntityType.MODIFIER_OPTION, option.external_id)
            if option_code is None:
                warnings.append(
                    f"Option {option.external_id} of {label} has no stable mapping, skipped"
                )
                continue
            options.append((option_code, option))

        if not options:
            if minimum > 0:
                errors.append(
                    f"Required {label} (minimum {minimum}) has no available options"
                )
            else:
                logger.debug("Skipping optional %s with no available options", label)
            return None

        maximum = modifier.max_allowed or len(options) or 1
        if minimum > len(options):
            errors.append(
                f"Required {label} needs {minimum} selections but only "
                f"{len(options)} options are available"
            )
            return None
        if maximum < minimum:
            errors.append(f"{label} has maximum {maximum} below minimum {minimum}")
            return None

        topping_id = topping_item_id(code)
        if topping_id in items:
            return topping_id

        topping = ToppingItem(
            id=topping_id,
            title=LocalizedText(default=modifier.name),
            quantity=SelectionQuantity(minimum=minimum, maximum=maximum),
        )
        for position, (option_code, option) in enumerate(options):
            option_id = option_item_id(option_code)
            price = format_price(option.price)
            if option_id not in items:
                option_item = ProductItem(
                    id=option_id,
                    title=LocalizedText(default=option.name),
                    price=price,
                    active=True,
                )
                self._attach_image(option_item, option_code, option.image_url, items, errors)
                self._add(items, option_item, errors)
                hidden_members.append(option_id)
            topping.products[option_id] = ItemReference(
                id=option_id, type="Product", order=position, price=price
            )

        self._add(items, topping, errors)
        return topping_id

    def _callback_url(self) -> str | None:
        if not self.callback_base_url:
            return None
        return sanitize_callback_url(self.callback_base_url.rstrip("/") + CALLBACK_PATH)
