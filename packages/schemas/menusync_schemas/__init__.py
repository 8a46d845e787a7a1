"""MenuSync Schemas - Pydantic models for data contracts."""

from menusync_schemas.catalog import (
    Catalog,
    CatalogItem,
    CatalogSubmissionPayload,
    CategoryItem,
    ImageItem,
    ItemAvailability,
    ItemAvailabilityPayload,
    ItemReference,
    LocalizedText,
    MenuItem,
    ProductItem,
    ScheduleEntryItem,
    SelectionQuantity,
    ToppingItem,
)
from menusync_schemas.marketplace import (
    CatalogImportDetail,
    CatalogImportIssue,
    CatalogImportState,
    CatalogImportStatus,
    CatalogImportSummary,
    FailureType,
    MarketplaceOrder,
    OrderAddress,
    OrderComments,
    OrderCustomer,
    OrderDelivery,
    OrderDispatchEvent,
    OrderDispatchRetryEvent,
    OrderLocalInfo,
    OrderPrice,
    OrderProduct,
    OrderTopping,
    PlatformRestaurant,
)
from menusync_schemas.pos import (
    POSBranch,
    POSCategory,
    POSCredentials,
    POSGroup,
    POSModifierGroup,
    POSModifierOption,
    POSOrderOption,
    POSOrderProduct,
    POSOrderRequest,
    POSOrderResult,
    POSProduct,
    POSProvider,
    POSSession,
)

__all__ = [
    # Catalog
    "Catalog",
    "CatalogItem",
    "CatalogSubmissionPayload",
    "CategoryItem",
    "ImageItem",
    "ItemAvailability",
    "ItemAvailabilityPayload",
    "ItemReference",
    "LocalizedText",
    "MenuItem",
    "ProductItem",
    "ScheduleEntryItem",
    "SelectionQuantity",
    "ToppingItem",
    # Marketplace
    "CatalogImportDetail",
    "CatalogImportIssue",
    "CatalogImportState",
    "CatalogImportStatus",
    "CatalogImportSummary",
    "FailureType",
    "MarketplaceOrder",
    "OrderAddress",
    "OrderComments",
    "OrderCustomer",
    "OrderDelivery",
    "OrderDispatchEvent",
    "OrderDispatchRetryEvent",
    "OrderLocalInfo",
    "OrderPrice",
    "OrderProduct",
    "OrderTopping",
    "PlatformRestaurant",
    # POS
    "POSBranch",
    "POSCategory",
    "POSCredentials",
    "POSGroup",
    "POSModifierGroup",
    "POSModifierOption",
    "POSOrderOption",
    "POSOrderProduct",
    "POSOrderRequest",
    "POSOrderResult",
    "POSProduct",
    "POSProvider",
    "POSSession",
]
