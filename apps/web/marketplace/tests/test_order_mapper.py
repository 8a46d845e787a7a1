"""Tests for the Marketplace order to POS order mapper."""

from decimal import Decimal

import pytest
from menusync_schemas import MarketplaceOrder

from apps.web.marketplace.exceptions import OrderPayloadError, UnmappedRemoteCodeError
from apps.web.marketplace.models import EntityType, StableMapping
from apps.web.marketplace.services.order_mapper import (
    OrderMapper,
    parse_decimal,
    strip_option_prefix,
)
from apps.web.marketplace.services.registry import StableIdMappingRegistry
from apps.web.marketplace.tests.factories import StableMappingFactory, order_payload


@pytest.fixture
def mappings(pos_account):
    """Stable mappings for the burger and its double option."""
    StableMappingFactory(
        account=pos_account,
        entity_type=EntityType.PRODUCT,
        pos_id="prod-burger",
        remote_code="P-burger",
    )
    StableMappingFactory(
        account=pos_account,
        entity_type=EntityType.MODIFIER_OPTION,
        pos_id="opt-double",
        remote_code="O-double",
    )


@pytest.fixture
def mapper(pos_account, mappings) -> OrderMapper:
    return OrderMapper(StableIdMappingRegistry(pos_account))


class TestParsing:
    """Tests for the wire value helpers."""

    def test_parse_decimal(self):
        """Test comma and dot decimal separators."""
        assert parse_decimal("11,50") == Decimal("11.50")
        assert parse_decimal("3.25") == Decimal("3.25")
        assert parse_decimal(2) == Decimal("2")
        assert parse_decimal("") is None
        assert parse_decimal("n/a") is None

    def test_strip_option_prefix(self):
        """Test that option product ids map back to option codes."""
        assert strip_option_prefix("topping-O-1") == "O-1"
        assert strip_option_prefix("O-1") == "O-1"


@pytest.mark.django_db
class TestOrderMapper:
    """Tests for OrderMapper.map."""

    def test_maps_order(self, mapper):
        """Test the full order mapping."""
        order = MarketplaceOrder.model_validate(order_payload())

        request = mapper.map(order, "branch-main", vendor_code="v-001")

        assert request.branch_id == "branch-main"
        assert request.type == 3
        assert request.business_date == "2026-03-14"
        assert request.due_at == "2026-03-14 13:15:00"
        assert request.subtotal_price == Decimal("11.00")
        assert request.total_price == Decimal("12.50")
        assert request.kitchen_notes == "No onions"
        assert request.customer_notes == "Ring twice"

        line = request.products[0]
        assert line.product_id == "prod-burger"
        assert line.quantity == 1
        assert line.unit_price == Decimal("8.50")
        assert line.options is None

    def test_meta_block(self, mapper):
        """Test that Marketplace identifiers and customer info are carried."""
        order = MarketplaceOrder.model_validate(order_payload())

        meta = mapper.map(order, "branch-main", vendor_code="v-001").meta

        assert meta["marketplace_token"] == "token-1"
        assert meta["vendor_code"] == "v-001"
        assert meta["platform_key"] == "MP_XX"
        assert meta["customer_name"] == "Sam Rivera"
        assert meta["delivery_city"] == "Springfield"
        assert "delivery_postcode" not in meta

    def test_maps_nested_toppings(self, mapper):
        """Test that toppings and their children become flat options."""
        toppings = [
            {
                "remoteCode": "topping-O-double",
                "name": "Double",
                "price": "2,50",
                "quantity": 1,
                "children": [{"name": "No code"}],
            }
        ]
        order = MarketplaceOrder.model_validate(order_payload(toppings=toppings))

        line = mapper.map(order, "branch-main").products[0]

        assert len(line.options) == 1
        assert line.options[0].modifier_option_id == "opt-double"
        assert line.options[0].unit_price == Decimal("2.50")

    def test_unknown_product_code(self, mapper):
        """Test that an unknown product code fails the order."""
        order = MarketplaceOrder.model_validate(order_payload(product_code="P-unknown"))

        with pytest.raises(UnmappedRemoteCodeError) as exc_info:
            mapper.map(order, "branch-main")

        assert exc_info.value.remote_code == "P-unknown"

    def test_unknown_option_code(self, mapper):
        """Test that an unknown option code fails the order."""
        order = MarketplaceOrder.model_validate(
            order_payload(toppings=[{"remoteCode": "topping-O-missing"}])
        )

        with pytest.raises(UnmappedRemoteCodeError):
            mapper.map(order, "branch-main")

    def test_no_products(self, mapper):
        """Test that an order without line items is a payload error."""
        order = MarketplaceOrder.model_validate(order_payload(products=[]))

        with pytest.raises(OrderPayloadError):
            mapper.map(order, "branch-main")

    def test_pickup_type_and_total_fallback(self, mapper):
        """Test pickup orders and the total computed from the subtotal."""
        order = MarketplaceOrder.model_validate(
            order_payload(
                expeditionType="pickup",
                price={"subTotal": "10.00", "discountAmountTotal": "1.50"},
            )
        )

        request = mapper.map(order, "branch-main")

        assert request.type == 2
        assert request.total_price == Decimal("8.50")

    def test_does_not_allocate_codes(self, mapper, pos_account):
        """Test that mapping an order never creates mappings."""
        order = MarketplaceOrder.model_validate(order_payload(product_code="P-new"))

        with pytest.raises(UnmappedRemoteCodeError):
            mapper.map(order, "branch-main")

        assert StableMapping.objects.for_account(pos_account).count() == 2
