from decimal import Decimal

from storecore.services.catalog_service import (
    CatalogService,
    formula_literal,
    record_to_category,
    record_to_product,
)

from .conftest import CATEGORIES_TABLE, PRODUCTS_TABLE


def test_product_mapping_defaults():
    product = record_to_product({"id": "recXYZ", "fields": {"name": "Thing", "price": "12"}})
    assert product.id == int("XYZ", 36)
    assert product.slug == "product-recXYZ"
    assert product.price == "12"
    assert product.weight_options == ["5mg"]
    assert product.in_stock is True


def test_price5mg_wins_over_price():
    product = record_to_product({"id": "rec1", "fields": {"id": 3, "price": 10, "price5mg": 12.5}})
    assert product.price == "12.5"
    assert product.price_for(None) == Decimal("12.5")


def test_weight_override_and_zero_override():
    product = record_to_product(
        {"id": "rec1", "fields": {"id": 3, "price": 40, "price10mg": 70, "price20mg": 0, "weights": ["10mg", "20mg"]}}
    )
    assert product.price_for("10mg") == Decimal("70")
    assert product.price_for("10MG") == Decimal("70")
    assert product.price_for("20mg") == Decimal("40")
    assert product.price_for("unknown") == Decimal("40")


def test_images_and_stock_flags():
    product = record_to_product(
        {
            "id": "rec1",
            "fields": {
                "id": 9,
                "price": 5,
                "image": [{"url": "https://img/1.png"}],
                "COA": [{"url": "https://img/coa.png"}],
                "image2": [{"url": "https://img/2.png"}],
                "outofstock": True,
                "inStock": True,
            },
        }
    )
    assert product.image_url == "https://img/1.png"
    assert product.image2_url == "https://img/coa.png"
    assert product.in_stock is False
    assert product.to_dict()["outofstock"] is True


def test_category_mapping():
    category = record_to_category({"id": "recC", "fields": {"id": 4, "name": "Blends"}})
    assert category.id == 4
    assert category.slug == "category-recC"


def test_formula_literal_escapes_quotes():
    assert formula_literal("o'brien") == "'o\\'brien'"


def test_queries_use_formulas(airtable):
    catalog = CatalogService(airtable, products_table=PRODUCTS_TABLE, categories_table=CATEGORIES_TABLE)
    assert [p.id for p in catalog.list_featured_products()] == [1]
    assert [p.id for p in catalog.list_products_by_category(2)] == [2]
    assert catalog.get_product_by_slug("tb-500").name == "TB-500"
    assert catalog.get_product_by_id(1).slug == "bpc-157"
    assert catalog.get_product_by_id(99) is None
    assert catalog.get_category_by_slug("peptides").id == 1
    assert catalog.get_category_by_id(2).name == "Blends"


def test_upstream_failure_degrades(airtable):
    airtable.fail_reads = True
    catalog = CatalogService(airtable, products_table=PRODUCTS_TABLE, categories_table=CATEGORIES_TABLE)
    assert catalog.list_products() == []
    assert catalog.get_product_by_slug("bpc-157") is None
    assert catalog.list_categories() == []
