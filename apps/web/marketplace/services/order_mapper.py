"""
Order mapping - Marketplace order webhook to POS order request.

Line items and options carry Marketplace remote codes; they are mapped
back to POS ids through the stable mapping registry. Nothing here mints
new codes: an unknown code fails the order permanently.
"""

import logging
from collections import deque
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from django.conf import settings
from django.utils import timezone

from menusync_schemas import (
    MarketplaceOrder,
    OrderProduct,
    OrderTopping,
    POSOrderOption,
    POSOrderProduct,
    POSOrderRequest,
)

from apps.web.marketplace.exceptions import OrderPayloadError, UnmappedRemoteCodeError
from apps.web.marketplace.models import EntityType
from apps.web.marketplace.services.catalog_builder import option_item_id
from apps.web.marketplace.services.registry import StableIdMappingRegistry

logger = logging.getLogger(__name__)

DUE_AT_FORMAT = "%Y-%m-%d %H:%M:%S"
OPTION_PREFIX = option_item_id("")


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a wire amount, accepting a comma as the decimal separator."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        return None


def strip_option_prefix(remote_code: str) -> str:
    """Option products are submitted as `topping-<code>`; orders echo that id."""
    if remote_code.startswith(OPTION_PREFIX):
        return remote_code[len(OPTION_PREFIX) :]
    return remote_code


def _format_due_at(value: datetime | None) -> str | None:
    return value.strftime(DUE_AT_FORMAT) if value else None


class OrderMapper:
    """Builds POS order requests from Marketplace orders."""

    def __init__(self, registry: StableIdMappingRegistry) -> None:
        self.registry = registry

    def map(
        self, order: MarketplaceOrder, branch_id: str, vendor_code: str = ""
    ) -> POSOrderRequest:
        """
        Map a Marketplace order onto the POS order API shape.

        Raises:
            OrderPayloadError: If the order has no products.
            UnmappedRemoteCodeError: If a product or option code is unknown.
        """
        if not order.products:
            raise OrderPayloadError(
                f"Order {order.code or order.token} has no products"
            )

        products = [self._map_product(line) for line in order.products]

        line_total = sum((p.total_price for p in products), Decimal("0"))
        price = order.price
        subtotal = (parse_decimal(price.sub_total) if price else None) or line_total
        discount = parse_decimal(price.discount_amount_total) if price else None
        total = parse_decimal(price.grand_total) if price else None
        if total is None:
            total = subtotal - (discount or Decimal("0"))

        comments = order.comments
        created = order.created_at or timezone.now()
        delivery = order.delivery

        return POSOrderRequest(
            type=self._order_type(order.expedition_type),
            source=getattr(settings, "POS_ORDER_SOURCE", 2),
            status=getattr(settings, "POS_ORDER_STATUS", 1),
            guests=getattr(settings, "POS_ORDER_GUESTS", 1),
            branch_id=branch_id,
            business_date=created.date().isoformat(),
            subtotal_price=subtotal,
            discount_amount=discount,
            total_price=total,
            due_at=_format_due_at(
                (delivery.expected_delivery_time if delivery else None)
                or (delivery.rider_pickup_time if delivery else None)
                or order.expiry_date
            ),
            kitchen_notes=comments.vendor_comment if comments else None,
            customer_notes=comments.customer_comment if comments else None,
            products=products,
            meta=self._meta(order, vendor_code),
        )

    def _order_type(self, expedition_type: str | None) -> int:
        match (expedition_type or "").lower():
            case "delivery":
                return getattr(settings, "POS_ORDER_TYPE_DELIVERY", 3)
            case "pickup":
                return getattr(settings, "POS_ORDER_TYPE_PICKUP", 2)
            case _:
                return getattr(settings, "POS_ORDER_TYPE", 1)

    def _map_product(self, line: OrderProduct) -> POSOrderProduct:
        if not line.remote_code:
            raise OrderPayloadError(f"Order line {line.name or line.id} has no remote code")

        mapping = self.registry.lookup_by_remote_code(line.remote_code, EntityType.PRODUCT)
        if mapping is None:
            raise UnmappedRemoteCodeError(line.remote_code, entity="product")

        quantity = int(parse_decimal(line.quantity) or 1)
        unit_price = (
            parse_decimal(line.paid_price) or parse_decimal(line.unit_price) or Decimal("0")
        )
        discount = parse_decimal(line.discount_amount)
        options = self._map_options(line.selected_toppings)

        return POSOrderProduct(
            product_id=mapping.pos_id,
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
            discount_amount=discount,
            discount_type=(
                getattr(settings, "POS_ORDER_DISCOUNT_TYPE", 1) if discount else None
            ),
            kitchen_notes=line.comment or None,
            options=options or None,
        )

    def _map_options(self, toppings: list[OrderTopping]) -> list[POSOrderOption]:
        options: list[POSOrderOption] = []
        pending: deque[OrderTopping] = deque(toppings)
        while pending:
            topping = pending.popleft()
            pending.extend(topping.children)

            if not topping.remote_code:
                logger.warning(
                    "Skipping topping %s without a remote code", topping.name or topping.id
                )
                continue

            code = strip_option_prefix(topping.remote_code)
            mapping = self.registry.lookup_by_remote_code(code, EntityType.MODIFIER_OPTION)
            if mapping is None:
                raise UnmappedRemoteCodeError(topping.remote_code, entity="option")

            quantity = topping.quantity or 1
            unit_price = parse_decimal(topping.price) or Decimal("0")
            options.append(
                POSOrderOption(
                    modifier_option_id=mapping.pos_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                )
            )
        return options

    def _meta(self, order: MarketplaceOrder, vendor_code: str) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "marketplace_token": order.token,
            "marketplace_code": order.code,
            "marketplace_short_code": order.short_code,
            "vendor_code": vendor_code,
            "expedition_type": order.expedition_type,
            "platform_key": order.local_info.platform_key if order.local_info else None,
            "platform_restaurant_id": (
                order.platform_restaurant.id if order.platform_restaurant else None
            ),
            "test_order": bool(order.test),
        }
        if order.customer:
            meta["customer_name"] = " ".join(
                part
                for part in (order.customer.first_name, order.customer.last_name)
                if part
            )
            meta["customer_phone"] = order.customer.mobile_phone
            meta["customer_email"] = order.customer.email
        if order.delivery and order.delivery.address:
            address = order.delivery.address
            meta["delivery_street"] = address.street
            meta["delivery_number"] = address.number
            meta["delivery_city"] = address.city
            meta["delivery_postcode"] = address.postcode
        return {key: value for key, value in meta.items() if value not in (None, "")}
