"""POS integration schemas - catalog and order contracts for the POS platform."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, PlainSerializer

# Decimal amounts travel as JSON numbers on the POS order API.
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

# =============================================================================
# Enums
# =============================================================================


class POSProvider(str, Enum):
    """Supported POS providers."""

    REST = "rest"
    MOCK = "mock"


# =============================================================================
# Authentication
# =============================================================================


class POSCredentials(BaseModel):
    """Credentials for authenticating with a POS provider."""

    provider: POSProvider
    client_id: str
    client_secret: str
    access_token: str | None = Field(
        default=None, description="Static API token, used instead of OAuth if set"
    )
    extra: dict[str, str] = Field(default_factory=dict)


class POSSession(BaseModel):
    """Authenticated session with a POS provider."""

    provider: POSProvider
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime


# =============================================================================
# Catalog Data
# =============================================================================


class POSBranch(BaseModel):
    """A POS branch (physical location) a product is sold at."""

    external_id: str
    name: str = ""
    is_active: bool = True


class POSCategory(BaseModel):
    """Product category in the POS."""

    external_id: str
    name: str = ""


class POSGroup(BaseModel):
    """Secondary tag/group taxonomy entry attached to a product."""

    external_id: str
    name: str = ""


class POSModifierOption(BaseModel):
    """
    A selectable option inside a modifier group.

    Options may carry nested child options (e.g. "extra" choices under a
    size option); the catalog builder flattens them under the same topping.
    """

    external_id: str
    name: str
    price: Decimal = Field(default=Decimal("0.00"))
    image_url: str = ""
    is_active: bool = True
    branch_ids: list[str] | None = Field(
        default=None, description="Branches the option is sold at (None = all)"
    )
    children: list["POSModifierOption"] = Field(default_factory=list)


class POSModifierGroup(BaseModel):
    """A modifier group attached to a product, with selection cardinality."""

    external_id: str
    name: str
    min_allowed: int | None = None
    max_allowed: int | None = None
    options: list[POSModifierOption] = Field(default_factory=list)


class POSProduct(BaseModel):
    """A product aggregate as fetched from the POS catalog."""

    external_id: str
    name: str
    description: str = ""
    price: Decimal | None = None
    image_url: str = ""
    is_active: bool = True
    sku: str = ""
    category: POSCategory | None = None
    tax_rate: Decimal | None = None
    groups: list[POSGroup] = Field(default_factory=list)
    branches: list[POSBranch] = Field(default_factory=list)
    modifier_groups: list[POSModifierGroup] = Field(default_factory=list)


# =============================================================================
# Orders
# =============================================================================


class POSOrderOption(BaseModel):
    """Selected modifier option on an order line."""

    modifier_option_id: str
    quantity: int = 1
    unit_price: Money
    total_price: Money


class POSOrderProduct(BaseModel):
    """Order line submitted to the POS."""

    product_id: str
    quantity: int = 1
    unit_price: Money
    total_price: Money
    discount_amount: Money | None = None
    discount_type: int | None = None
    kitchen_notes: str | None = None
    options: list[POSOrderOption] | None = None


class POSOrderRequest(BaseModel):
    """Order creation request for the POS order API."""

    type: int
    source: int
    status: int
    guests: int
    branch_id: str
    business_date: str = Field(description="YYYY-MM-DD")
    subtotal_price: Money | None = None
    discount_amount: Money | None = None
    total_price: Money | None = None
    rounding_amount: Money = Decimal("0")
    due_at: str | None = Field(default=None, description="YYYY-MM-DD HH:MM:SS")
    kitchen_notes: str | None = None
    customer_notes: str | None = None
    products: list[POSOrderProduct]
    meta: dict[str, Any] = Field(default_factory=dict)


class POSOrderResult(BaseModel):
    """Result of creating an order in the POS system."""

    external_id: str = Field(description="Order ID in the POS system")
    reference: str | None = None
    status: int | str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
