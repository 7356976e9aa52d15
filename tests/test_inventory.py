import pytest

import inventory
from errors import InsufficientStockError, NotFoundError


def test_reduce_stock_subtracts_quantity(db, catalog):
    updated = inventory.reduce_stock(db, catalog.product_id, 2)
    assert updated["stock"] == 1
    assert inventory.get_product_stock(db, catalog.product_id) == 1


def test_reduce_stock_clamps_at_zero(db, catalog):
    updated = inventory.reduce_stock(db, catalog.product_id, 50)
    assert updated["stock"] == 0

    updated = inventory.reduce_stock(db, catalog.product_id, 1)
    assert updated["stock"] == 0


def test_reduce_stock_on_variant_leaves_product_alone(db, catalog):
    updated = inventory.reduce_stock(db, catalog.product_id, 1, catalog.variant_id)
    assert updated["stock"] == 0
    assert inventory.get_product_stock(db, catalog.product_id) == 3


def test_reduce_stock_missing_product(db, catalog):
    with pytest.raises(NotFoundError):
        inventory.reduce_stock(db, "64b7f0000000000000000000", 1)
    with pytest.raises(NotFoundError):
        inventory.reduce_stock(db, "not-an-id", 1)


def test_reduce_stock_missing_variant(db, catalog):
    with pytest.raises(NotFoundError):
        inventory.reduce_stock(db, catalog.product_id, 1, "64b7f0000000000000000000")


def test_variant_of_another_product_is_not_found(db, catalog):
    with pytest.raises(NotFoundError):
        inventory.reduce_stock(db, catalog.other_id, 1, catalog.variant_id)


def test_reduce_stock_rejects_non_positive_quantity(db, catalog):
    with pytest.raises(ValueError):
        inventory.reduce_stock(db, catalog.product_id, 0)


def test_reserve_stock_refuses_more_than_available(db, catalog):
    with pytest.raises(InsufficientStockError):
        inventory.reserve_stock(db, catalog.product_id, 4)
    assert inventory.get_product_stock(db, catalog.product_id) == 3

    inventory.reserve_stock(db, catalog.product_id, 3)
    assert inventory.get_product_stock(db, catalog.product_id) == 0


def test_reserve_last_variant_unit_only_once(db, catalog):
    inventory.reserve_stock(db, catalog.product_id, 1, catalog.variant_id)
    with pytest.raises(InsufficientStockError):
        inventory.reserve_stock(db, catalog.product_id, 1, catalog.variant_id)


def test_stock_changes_are_recorded(db, catalog):
    inventory.reserve_stock(db, catalog.product_id, 2, order_id="o-1")
    inventory.increase_stock(db, catalog.product_id, 5, reason="Delivery")

    history = {h["type"]: h for h in inventory.stock_history(db, catalog.product_id)}
    assert set(history) == {"RESTOCK", "PURCHASE"}
    restock, purchase = history["RESTOCK"], history["PURCHASE"]
    assert purchase["quantity"] == -2
    assert purchase["previous_stock"] == 3
    assert purchase["new_stock"] == 1
    assert purchase["order_id"] == "o-1"
    assert restock["new_stock"] == 6


def test_get_product_includes_variants(db, catalog):
    product = inventory.get_product(db, catalog.product_id)
    assert product["name"] == "Basic Tee"
    assert [v["name"] for v in product["variants"]] == ["L"]
    assert inventory.get_product(db, "64b7f0000000000000000000") is None


def test_get_products_filters_by_category(db, catalog):
    assert len(inventory.get_products(db)) == 2
    shirts = inventory.get_products(db, "shirts")
    assert [p["id"] for p in shirts] == [catalog.product_id]


def test_get_product_stock_unknown_returns_zero(db, catalog):
    assert inventory.get_product_stock(db, "64b7f0000000000000000000") == 0
    assert inventory.get_product_stock(db, catalog.product_id, "64b7f0000000000000000000") == 0
    assert inventory.get_product_stock(db, catalog.product_id, catalog.variant_id) == 1


@pytest.mark.parametrize("stock,status", [(0, "out_of_stock"), (5, "low_stock"), (6, "in_stock")])
def test_stock_status(stock, status):
    assert inventory.stock_status(stock) == status
