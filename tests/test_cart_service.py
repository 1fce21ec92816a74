import threading
from decimal import Decimal

import pytest

from storecore.services.cart_service import CartItemNotFound, CartStore
from storecore.services.catalog_service import CatalogService

from .conftest import CATEGORIES_TABLE, PRODUCTS_TABLE


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def catalog(airtable):
    return CatalogService(airtable, products_table=PRODUCTS_TABLE, categories_table=CATEGORIES_TABLE)


def test_add_merges_same_product_and_weight(catalog):
    cart = CartStore(catalog)
    first = cart.add("s1", 1, 2, "10mg")
    again = cart.add("s1", 1, 1, "10mg")
    other = cart.add("s1", 1, 1, "5mg")
    assert again.id == first.id
    assert again.quantity == 3
    assert other.id != first.id


def test_get_joins_catalog_and_prices_weights(catalog):
    cart = CartStore(catalog)
    cart.add("s1", 1, 2, "10mg")
    cart.add("s1", 2, 3)
    view = cart.get("s1")
    assert view["item_count"] == 5
    assert view["subtotal"] == Decimal("2") * 90 + Decimal("3") * 10


def test_missing_product_is_excluded_from_subtotal(catalog):
    cart = CartStore(catalog)
    cart.add("s1", 2, 1)
    cart.add("s1", 42, 1)
    view = cart.get("s1")
    assert view["item_count"] == 2
    assert view["subtotal"] == Decimal("10")
    assert [it["product"] is None for it in view["items"]] == [False, True]


def test_quantity_must_be_positive(catalog):
    cart = CartStore(catalog)
    with pytest.raises(ValueError):
        cart.add("s1", 1, 0)
    line = cart.add("s1", 1, 1)
    with pytest.raises(ValueError):
        cart.update("s1", line.id, 0)


def test_other_sessions_cannot_touch_items(catalog):
    cart = CartStore(catalog)
    line = cart.add("owner", 1, 1)
    with pytest.raises(CartItemNotFound):
        cart.update("intruder", line.id, 5)
    with pytest.raises(CartItemNotFound):
        cart.remove("intruder", line.id)
    assert cart.get("owner")["item_count"] == 1


def test_item_ids_are_unique_across_sessions(catalog):
    cart = CartStore(catalog)
    a = cart.add("s1", 1, 1)
    b = cart.add("s2", 1, 1)
    assert a.id != b.id


def test_remove_and_clear(catalog):
    cart = CartStore(catalog)
    line = cart.add("s1", 1, 1)
    cart.add("s1", 2, 1)
    cart.remove("s1", line.id)
    assert [it["product_id"] for it in cart.get("s1")["items"]] == [2]
    cart.clear("s1")
    assert cart.get("s1")["items"] == []


def test_idle_carts_are_evicted(catalog):
    clock = Clock()
    cart = CartStore(catalog, ttl_seconds=100, clock=clock)
    cart.add("old", 1, 1)
    clock.now = 50
    cart.add("recent", 1, 1)
    clock.now = 120
    cart.add("new", 1, 1)
    assert cart.get("old")["items"] == []
    assert cart.get("recent")["item_count"] == 1


def test_concurrent_adds_do_not_lose_updates(catalog):
    cart = CartStore(catalog)
    threads = [threading.Thread(target=cart.add, args=("s1", 1, 1)) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    lines = cart.lines("s1")
    assert len(lines) == 1
    assert lines[0].quantity == 20
