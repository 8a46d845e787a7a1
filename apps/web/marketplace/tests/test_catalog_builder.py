"""Tests for the catalog graph builder."""

from decimal import Decimal

import pytest
from menusync_schemas import (
    CategoryItem,
    ItemReference,
    LocalizedText,
    POSCategory,
    POSGroup,
    POSModifierGroup,
    POSModifierOption,
    POSProduct,
)

from apps.web.marketplace.exceptions import CatalogValidationError
from apps.web.marketplace.models import EntityType
from apps.web.marketplace.services.catalog_builder import (
    HIDDEN_CATEGORY_ID,
    MENU_ID,
    SCHEDULE_ID,
    UNCATEGORIZED_ID,
    CatalogGraphBuilder,
    format_price,
    validate_catalog,
)
from apps.web.marketplace.services.registry import StableIdMappingRegistry


def option(external_id: str, name: str = "", **kwargs) -> POSModifierOption:
    return POSModifierOption(external_id=external_id, name=name or external_id, **kwargs)


def product(external_id: str, modifiers=None, **kwargs) -> POSProduct:
    defaults = {
        "name": external_id.title(),
        "price": Decimal("5.00"),
        "category": POSCategory(external_id="cat-main", name="Mains"),
    }
    defaults.update(kwargs)
    return POSProduct(
        external_id=external_id, modifier_groups=modifiers or [], **defaults
    )


@pytest.fixture
def builder(pos_account) -> CatalogGraphBuilder:
    """A builder for the test account with no callback URL."""
    return CatalogGraphBuilder(
        StableIdMappingRegistry(pos_account), vendor_code="v-001", callback_base_url=""
    )


def of_type(items: dict, item_type: str) -> list:
    return [item for item in items.values() if item.type == item_type]


class TestFormatPrice:
    """Tests for format_price."""

    def test_two_decimals(self):
        """Test that prices are rendered with two decimals."""
        assert format_price(Decimal("8.5")) == "8.50"
        assert format_price(Decimal("2.345")) == "2.35"
        assert format_price(None) == "0.00"


@pytest.mark.django_db
class TestCatalogShape:
    """Tests for the overall graph shape."""

    def test_products_categories_menu(self, builder, pos_account):
        """Test that products land in their category and the menu lists it."""
        result = builder.build([product("burger"), product("fries")])
        items = result.items
        registry = StableIdMappingRegistry(pos_account)
        category_code = registry.lookup(EntityType.CATEGORY, "cat-main").remote_code

        category = items[f"Category#{category_code}"]
        assert category.title.default == "Mains"
        assert len(category.products) == 2

        menu = items[MENU_ID]
        assert menu.menu_type == "DELIVERY"
        assert menu.title.default == "POS Menu"
        assert list(menu.products) == [f"Category#{category_code}"]
        assert SCHEDULE_ID in menu.schedule

        schedule = items[SCHEDULE_ID]
        assert schedule.start_time == "08:00:00"
        assert schedule.end_time == "23:59:00"
        assert len(schedule.week_days) == 7

        assert result.products_count == 2
        assert result.categories_count == 1
        assert result.payload.vendors == ["v-001"]

    def test_product_ids_are_remote_codes(self, builder, pos_account):
        """Test that product item ids are the stable remote codes."""
        result = builder.build([product("burger")])
        code = StableIdMappingRegistry(pos_account).lookup(
            EntityType.PRODUCT, "burger"
        ).remote_code

        assert result.items[code].price == "5.00"

    def test_ids_stable_across_builds(self, builder):
        """Test that rebuilding the same catalog yields the same item ids."""
        first = builder.build([product("burger")])
        second = builder.build([product("burger")])

        assert set(first.items) == set(second.items)

    def test_uncategorized_fallback(self, builder):
        """Test that products without a category get the fallback category."""
        result = builder.build([product("water", category=None)])

        category = result.items[UNCATEGORIZED_ID]
        assert category.title.default == "Other Items"

    def test_no_dangling_references(self, builder):
        """Test that every reference resolves to an item of the right type."""
        result = builder.build(
            [
                product(
                    "burger",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-size",
                            name="Size",
                            min_allowed=1,
                            max_allowed=1,
                            options=[option("single"), option("double")],
                        )
                    ],
                    image_url="https://cdn.pos-images.net/burger.jpg",
                )
            ]
        )

        assert validate_catalog(result.items) == []
        for item_id, item in result.items.items():
            assert item.id == item_id

    def test_no_hidden_category_without_options(self, builder):
        """Test that the hidden category only appears when needed."""
        result = builder.build([product("fries")])

        assert HIDDEN_CATEGORY_ID not in result.items

    def test_callback_url(self, pos_account):
        """Test that an allowed callback base yields the status callback URL."""
        builder = CatalogGraphBuilder(
            StableIdMappingRegistry(pos_account),
            vendor_code="v-001",
            callback_base_url="https://sync.menusync.io/marketplace/webhooks/",
        )

        result = builder.build([product("fries")])

        assert (
            result.payload.callback_url
            == "https://sync.menusync.io/marketplace/webhooks/catalog-status"
        )

    def test_disallowed_callback_url_dropped(self, pos_account):
        """Test that a development callback URL is omitted."""
        builder = CatalogGraphBuilder(
            StableIdMappingRegistry(pos_account),
            vendor_code="v-001",
            callback_base_url="http://localhost:8000/marketplace/webhooks",
        )

        result = builder.build([product("fries")])

        assert result.payload.callback_url is None
        assert "callbackUrl" not in result.payload.to_wire()


@pytest.mark.django_db
class TestToppings:
    """Tests for modifier group handling."""

    def test_hidden_category_lists_every_option_product(self, builder):
        """Test that every topping product is referenced by the hidden category."""
        result = builder.build(
            [
                product(
                    "burger",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-extras",
                            name="Extras",
                            options=[option("cheese"), option("bacon")],
                        )
                    ],
                )
            ]
        )
        items = result.items

        hidden = items[HIDDEN_CATEGORY_ID]
        assert hidden.order == 999
        toppings = of_type(items, "Topping")
        assert len(toppings) == 1
        option_ids = set(toppings[0].products)
        assert option_ids == set(hidden.products)
        assert all(option_id.startswith("topping-O-") for option_id in option_ids)
        assert HIDDEN_CATEGORY_ID in items[MENU_ID].products

    def test_minimum_preserved(self, builder):
        """Test that a min=2 group keeps its bounds."""
        result = builder.build(
            [
                product(
                    "pizza",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-toppings",
                            name="Pick two",
                            min_allowed=2,
                            max_allowed=3,
                            options=[option("a"), option("b"), option("c")],
                        )
                    ],
                )
            ]
        )

        topping = of_type(result.items, "Topping")[0]
        assert topping.quantity.minimum == 2
        assert topping.quantity.maximum == 3
        assert topping.id.startswith("tt-M-")

    def test_maximum_defaults_to_option_count(self, builder):
        """Test that a group without max_allowed allows every option."""
        result = builder.build(
            [
                product(
                    "pizza",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-extras",
                            name="Extras",
                            options=[option("a"), option("b")],
                        )
                    ],
                )
            ]
        )

        topping = of_type(result.items, "Topping")[0]
        assert topping.quantity.minimum == 0
        assert topping.quantity.maximum == 2

    def test_required_group_without_options_fails(self, builder):
        """Test that an unsatisfiable required group rejects the catalog."""
        with pytest.raises(CatalogValidationError) as exc_info:
            builder.build(
                [
                    product(
                        "burger",
                        modifiers=[
                            POSModifierGroup(
                                external_id="mod-size",
                                name="Size",
                                min_allowed=1,
                                options=[option("gone", is_active=False)],
                            )
                        ],
                    )
                ]
            )

        assert any("mod-size" in error for error in exc_info.value.errors)

    def test_required_group_with_too_few_options_fails(self, builder):
        """Test that minimum above the option count rejects the catalog."""
        with pytest.raises(CatalogValidationError):
            builder.build(
                [
                    product(
                        "pizza",
                        modifiers=[
                            POSModifierGroup(
                                external_id="mod-two",
                                name="Pick two",
                                min_allowed=2,
                                options=[option("only")],
                            )
                        ],
                    )
                ]
            )

    def test_optional_empty_group_skipped(self, builder):
        """Test that an optional group with nothing to offer is left out."""
        result = builder.build(
            [
                product(
                    "burger",
                    modifiers=[
                        POSModifierGroup(external_id="mod-empty", name="Extras", options=[])
                    ],
                )
            ]
        )

        assert of_type(result.items, "Topping") == []
        burger = of_type(result.items, "Product")[0]
        assert burger.toppings == {}

    def test_nested_options_flattened(self, builder):
        """Test that child options become options of the same topping."""
        result = builder.build(
            [
                product(
                    "burger",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-size",
                            name="Size",
                            options=[option("large", children=[option("xl")])],
                        )
                    ],
                )
            ]
        )

        topping = of_type(result.items, "Topping")[0]
        assert len(topping.products) == 2

    def test_options_filtered_by_branch(self, pos_account):
        """Test that options not sold at the branch are dropped."""
        builder = CatalogGraphBuilder(
            StableIdMappingRegistry(pos_account),
            vendor_code="v-001",
            branch_id="branch-main",
            callback_base_url="",
        )

        result = builder.build(
            [
                product(
                    "burger",
                    modifiers=[
                        POSModifierGroup(
                            external_id="mod-extras",
                            name="Extras",
                            options=[
                                option("here", branch_ids=["branch-main"]),
                                option("elsewhere", branch_ids=["branch-other"]),
                                option("everywhere"),
                            ],
                        )
                    ],
                )
            ]
        )

        topping = of_type(result.items, "Topping")[0]
        titles = {result.items[ref].title.default for ref in topping.products}
        assert titles == {"here", "everywhere"}

    def test_shared_modifier_emitted_once(self, builder):
        """Test that a modifier group shared by two products is one topping."""
        shared = POSModifierGroup(
            external_id="mod-sauce", name="Sauce", options=[option("ketchup")]
        )

        result = builder.build(
            [product("burger", modifiers=[shared]), product("fries", modifiers=[shared])]
        )

        assert len(of_type(result.items, "Topping")) == 1
        assert len(result.items[HIDDEN_CATEGORY_ID].products) == 1


@pytest.mark.django_db
class TestImages:
    """Tests for image handling."""

    def test_http_image_upgraded(self, builder):
        """Test that http image URLs are upgraded to https."""
        result = builder.build(
            [product("burger", image_url="http://cdn.pos-images.net/burger.jpg")]
        )

        images = of_type(result.items, "Image")
        assert len(images) == 1
        assert images[0].url == "https://cdn.pos-images.net/burger.jpg"
        assert images[0].id.startswith("image-P-")

    def test_disallowed_image_stripped(self, builder):
        """Test that development image URLs are dropped from the product."""
        result = builder.build(
            [
                product("burger", image_url="https://localhost/burger.jpg"),
                product("fries", image_url="https://placeholder.img/fries.png"),
            ]
        )

        assert of_type(result.items, "Image") == []
        for item in of_type(result.items, "Product"):
            assert item.images == {}


@pytest.mark.django_db
class TestGroupCategories:
    """Tests for the secondary group taxonomy."""

    def test_group_categories_after_regular(self, pos_account, settings):
        """Test that group categories are emitted after regular ones."""
        settings.MARKETPLACE_MENU_GROUPS_ENABLED = True
        settings.MARKETPLACE_MENU_GROUPS_SORT_ORDER = "after"
        builder = CatalogGraphBuilder(
            StableIdMappingRegistry(pos_account), vendor_code="v-001", callback_base_url=""
        )

        result = builder.build(
            [product("burger", groups=[POSGroup(external_id="grp-1", name="Popular")])]
        )

        menu_categories = list(result.items[MENU_ID].products)
        assert len(menu_categories) == 2
        assert menu_categories[1].startswith("Category#group-G-")
        assert result.items[menu_categories[1]].title.default == "Popular"

    def test_group_categories_before_regular(self, pos_account, settings):
        """Test the 'before' sort order."""
        settings.MARKETPLACE_MENU_GROUPS_ENABLED = True
        settings.MARKETPLACE_MENU_GROUPS_SORT_ORDER = "before"
        builder = CatalogGraphBuilder(
            StableIdMappingRegistry(pos_account), vendor_code="v-001", callback_base_url=""
        )

        result = builder.build(
            [product("burger", groups=[POSGroup(external_id="grp-1", name="Popular")])]
        )

        assert list(result.items[MENU_ID].products)[0].startswith("Category#group-")


class TestValidateCatalog:
    """Tests for validate_catalog."""

    def test_detects_dangling_reference(self):
        """Test that a reference to a missing item is reported."""
        items = {
            "Category#x": CategoryItem(
                id="Category#x",
                title=LocalizedText(default="X"),
                products={"P-1": ItemReference(id="P-1", type="Product")},
            )
        }

        errors = validate_catalog(items)

        assert any("missing Product 'P-1'" in error for error in errors)
        assert any("no Menu" in error for error in errors)
