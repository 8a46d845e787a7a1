"""
Marketplace catalog schemas - the flat, cross-referenced item graph.

The catalog is a map of item id to item. Items reference each other by id
through ItemReference edges; the `type` field discriminates the item kind.
Availability updates address already-published items by remote code.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CatalogModel(BaseModel):
    """Base for catalog payload models (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocalizedText(CatalogModel):
    """Translatable text; only the default locale is populated."""

    default: str = ""


class ItemReference(CatalogModel):
    """An edge in the catalog graph."""

    id: str
    type: str
    order: int | None = None
    price: str | None = None


class SelectionQuantity(CatalogModel):
    """Selection cardinality of a topping."""

    minimum: int = 0
    maximum: int = 1


# =============================================================================
# Item kinds
# =============================================================================


class ProductItem(CatalogModel):
    """A sellable product, or an option product referenced by a topping."""

    type: Literal["Product"] = "Product"
    id: str
    title: LocalizedText
    description: LocalizedText | None = None
    price: str
    active: bool = True
    is_prepacked_item: bool = False
    is_express_item: bool = False
    exclude_dish_information: bool = False
    images: dict[str, ItemReference] = Field(default_factory=dict)
    toppings: dict[str, ItemReference] = Field(default_factory=dict)


class ImageItem(CatalogModel):
    """Product or option image."""

    type: Literal["Image"] = "Image"
    id: str
    url: str
    alt: LocalizedText | None = None


class ToppingItem(CatalogModel):
    """A modifier group: selection bounds plus its option products."""

    type: Literal["Topping"] = "Topping"
    id: str
    title: LocalizedText
    order: int | None = None
    quantity: SelectionQuantity
    products: dict[str, ItemReference] = Field(default_factory=dict)


class CategoryItem(CatalogModel):
    """A category listing member products in order."""

    type: Literal["Category"] = "Category"
    id: str
    title: LocalizedText
    description: LocalizedText | None = None
    order: int | None = None
    products: dict[str, ItemReference] = Field(default_factory=dict)


class ScheduleEntryItem(CatalogModel):
    """Opening-hours entry the menu is bound to."""

    type: Literal["ScheduleEntry"] = "ScheduleEntry"
    id: str
    start_time: str
    end_time: str
    week_days: list[str]


class MenuItem(CatalogModel):
    """The menu; references every category in order."""

    type: Literal["Menu"] = "Menu"
    id: str
    title: LocalizedText
    description: LocalizedText | None = None
    menu_type: str = "DELIVERY"
    schedule: dict[str, ItemReference] = Field(default_factory=dict)
    products: dict[str, ItemReference] = Field(default_factory=dict)


CatalogItem = Annotated[
    ProductItem | ImageItem | ToppingItem | CategoryItem | ScheduleEntryItem | MenuItem,
    Field(discriminator="type"),
]


class Catalog(CatalogModel):
    """The flat item map."""

    items: dict[str, CatalogItem] = Field(default_factory=dict)


class CatalogSubmissionPayload(CatalogModel):
    """Request body of a catalog submission."""

    catalog: Catalog
    vendors: list[str]
    callback_url: str | None = None

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, omitting empty optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Availability
# =============================================================================


class ItemAvailability(CatalogModel):
    """Availability of one already-published item, addressed by remote code."""

    remote_code: str
    is_available: bool
    available_at: datetime | None = None


class ItemAvailabilityPayload(CatalogModel):
    """Request body of an item availability update."""

    items: list[ItemAvailability] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
