"""
Marketplace schemas - inbound order webhooks, catalog import callbacks,
and the internal order dispatch events.

Marketplace payloads are camelCase on the wire; models accept either the
camelCase alias or the snake_case field name.
"""

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MarketplaceModel(BaseModel):
    """Base for Marketplace wire payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Enums
# =============================================================================


class FailureType(str, Enum):
    """Classification of a dispatch failure."""

    TRANSIENT = "Transient"
    PERMANENT = "Permanent"


class CatalogImportState(str, Enum):
    """Status values reported by the catalog import callback."""

    COMPLETED = "completed"
    DONE = "done"
    FAILED = "failed"
    PARTIAL = "partial"


# =============================================================================
# Order Webhook
# =============================================================================


class OrderTopping(MarketplaceModel):
    """Selected topping on an order product; may nest children."""

    id: str | None = None
    remote_code: str | None = None
    name: str | None = None
    price: str | None = None
    quantity: int | None = None
    type: str | None = None
    children: list["OrderTopping"] = Field(default_factory=list)


class OrderProduct(MarketplaceModel):
    """Line item on a Marketplace order."""

    id: str | None = None
    remote_code: str | None = None
    name: str | None = None
    category_name: str | None = None
    paid_price: str | None = None
    unit_price: str | None = None
    quantity: str | int | None = None
    discount_amount: str | None = None
    comment: str | None = None
    selected_toppings: list[OrderTopping] = Field(default_factory=list)


class OrderPrice(MarketplaceModel):
    """Price block of a Marketplace order (amounts are strings on the wire)."""

    sub_total: str | None = None
    grand_total: str | None = None
    discount_amount_total: str | None = None
    delivery_fee: str | None = None
    vat_total: str | None = None


class OrderCustomer(MarketplaceModel):
    """Customer block of a Marketplace order."""

    id: str | None = None
    code: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    mobile_phone: str | None = None


class OrderAddress(MarketplaceModel):
    """Delivery address."""

    postcode: str | None = None
    city: str | None = None
    street: str | None = None
    number: str | None = None


class OrderDelivery(MarketplaceModel):
    """Delivery block of a Marketplace order."""

    address: OrderAddress | None = None
    expected_delivery_time: datetime | None = None
    rider_pickup_time: datetime | None = None
    express_delivery: bool | None = None


class OrderComments(MarketplaceModel):
    """Free-text comments on the order."""

    customer_comment: str | None = None
    vendor_comment: str | None = None


class OrderLocalInfo(MarketplaceModel):
    """Platform locale block."""

    platform: str | None = None
    platform_key: str | None = None
    country_code: str | None = None


class PlatformRestaurant(MarketplaceModel):
    """Marketplace-side restaurant reference."""

    id: str | None = None


class MarketplaceOrder(MarketplaceModel):
    """Order webhook payload delivered by the Marketplace."""

    token: str | None = None
    code: str | None = None
    short_code: str | None = None
    created_at: datetime | None = None
    expiry_date: datetime | None = None
    expedition_type: str | None = None
    test: bool | None = None
    pre_order: bool | None = None
    customer: OrderCustomer | None = None
    delivery: OrderDelivery | None = None
    comments: OrderComments | None = None
    local_info: OrderLocalInfo | None = None
    platform_restaurant: PlatformRestaurant | None = None
    price: OrderPrice | None = None
    products: list[OrderProduct] = Field(default_factory=list)


# =============================================================================
# Catalog Import Callback
# =============================================================================


class CatalogImportSummary(MarketplaceModel):
    """Aggregate counts reported by the Marketplace after an import."""

    categories_created: int = 0
    categories_updated: int = 0
    products_created: int = 0
    products_updated: int = 0


class CatalogImportIssue(MarketplaceModel):
    """A single per-item error reported for an import."""

    type: str | None = None
    remote_code: str | None = None
    message: str | None = None


class CatalogImportDetail(MarketplaceModel):
    """Per-vendor detail row in an import callback."""

    pos_vendor_id: str | None = None
    status: str | None = None
    message: str | None = None


class CatalogImportStatus(MarketplaceModel):
    """Catalog import status callback."""

    import_id: str | None = None
    catalog_import_id: str | None = None
    vendor_code: str | None = None
    chain_code: str | None = None
    status: str | None = None
    message: str | None = None
    summary: CatalogImportSummary | None = None
    errors: list[CatalogImportIssue] = Field(default_factory=list)
    details: list[CatalogImportDetail] = Field(default_factory=list)

    def normalized(self) -> "CatalogImportStatus":
        """
        Fill import id and vendor code from their alternate locations.

        Some callbacks carry only `catalogImportId`, and only name the vendor
        through `details[].posVendorId`.
        """
        update: dict[str, str] = {}
        if not self.import_id and self.catalog_import_id:
            update["import_id"] = self.catalog_import_id
        if not self.vendor_code and self.details and self.details[0].pos_vendor_id:
            update["vendor_code"] = self.details[0].pos_vendor_id
        return self.model_copy(update=update) if update else self


# =============================================================================
# Dispatch Events
# =============================================================================


class OrderDispatchEvent(BaseModel):
    """Published once per received order webhook (and per replay)."""

    event_type: Literal["order.dispatch.v1"] = "order.dispatch.v1"
    correlation_id: str
    account_id: UUID
    vendor_code: str
    tenant_id: int | None = None
    order_log_id: UUID
    idempotency_key: str
    attempt: int = Field(default=1, ge=1)
    occurred_at: datetime


class OrderDispatchRetryEvent(BaseModel):
    """Re-publication of a dispatch event after a transient failure."""

    event_type: Literal["order.dispatch.retry.v1"] = "order.dispatch.retry.v1"
    message: OrderDispatchEvent
    attempts: int
    error_code: str
    error_message: str
    last_attempt: datetime
    retry_delay_seconds: int
    failure_type: FailureType = FailureType.TRANSIENT
