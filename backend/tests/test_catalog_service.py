"""
Product catalog tests: master data, stock corrections, archive vs delete.
"""

import pytest

from caisse.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ProductInUseError,
    ValidationError,
)
from caisse.models import MovementKind, Product, StockMovement
from caisse.services.catalog_service import StockLevel, stock_level

from conftest import ADMIN, STOCKISTE


@pytest.mark.parametrize("stock,threshold,expected", [
    (0, 5, StockLevel.OUT),
    (3, 5, StockLevel.CRITICAL),
    (5, 5, StockLevel.CRITICAL),
    (7, 5, StockLevel.LOW),
    (8, 5, StockLevel.OK),
    (4, 0, StockLevel.OK),
])
def test_stock_level(stock, threshold, expected):
    assert stock_level(stock, threshold) == expected


def test_create_product_records_initial_stock(services, db_session):
    category = services.catalog.create_category("Boissons")
    product = services.catalog.create_product(
        name="Cola", sale_price_cents=150, purchase_price_cents=60,
        category_id=category.id, initial_stock=24, actor_id=ADMIN,
    )

    assert product.stock_actuel == 24
    movement = db_session.query(StockMovement).filter_by(product_id=product.id).one()
    assert movement.kind == MovementKind.IN
    assert (movement.stock_before, movement.stock_after) == (0, 24)
    assert product.to_dict()["category_name"] == "Boissons"


def test_create_product_conflicts_and_validation(services, make_product, db_session):
    make_product(name="Chips")
    with pytest.raises(ConflictError):
        services.catalog.create_product(name="Chips", sale_price_cents=100)
    with pytest.raises(ValidationError):
        services.catalog.create_product(name="Bad", sale_price_cents=-1)
    with pytest.raises(NotFoundError):
        services.catalog.create_product(name="Orphan", sale_price_cents=100, category_id=999)
    with pytest.raises(ConflictError):
        services.catalog.create_category("Snacks")
        services.catalog.create_category("Snacks")


def test_update_product_refuses_stock(services, make_product, db_session):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        services.catalog.update_product(product.id, stock_actuel=50)

    updated = services.catalog.update_product(product.id, sale_price_cents=300, name="Renamed")
    assert updated.sale_price_cents == 300
    assert updated.name == "Renamed"
    assert db_session.get(Product, product.id).stock_actuel == 5


def test_adjust_stock_and_loss(services, make_product, db_session):
    product = make_product(stock=10)

    services.catalog.adjust_stock(product.id, -2, "found broken", actor_id=STOCKISTE)
    services.catalog.record_loss(product.id, 3, "expired", actor_id=STOCKISTE)

    assert db_session.get(Product, product.id).stock_actuel == 5
    with pytest.raises(InsufficientStockError):
        services.catalog.record_loss(product.id, 6, "stolen")
    with pytest.raises(ValidationError):
        services.catalog.adjust_stock(product.id, 1, "")


def test_record_count_reconciles_to_counted_quantity(services, make_product, db_session):
    product = make_product(stock=10)

    movement = services.catalog.record_count(product.id, 7, actor_id=STOCKISTE, comment="shelf count")

    assert movement.kind == MovementKind.INVENTORY_COUNT
    assert movement.quantity_delta == -3
    assert db_session.get(Product, product.id).stock_actuel == 7

    assert services.catalog.record_count(product.id, 7) is None
    assert services.catalog.record_count(product.id, 12).quantity_delta == 5


def test_archive_keeps_history(services, make_product, db_session):
    product = make_product(stock=5)

    services.catalog.archive_product(product.id)

    archived = db_session.get(Product, product.id)
    assert archived.is_active is False
    assert db_session.query(StockMovement).filter_by(product_id=product.id).count() == 1


def test_delete_referenced_product_is_refused(services, make_product, db_session):
    product = make_product(stock=5)

    with pytest.raises(ProductInUseError) as exc_info:
        services.catalog.delete_product(product.id)

    assert "stock_movements" in exc_info.value.details["referenced_by"]
    assert db_session.get(Product, product.id) is not None


def test_delete_unused_product(services, make_product, db_session):
    product = make_product(stock=0)

    services.catalog.delete_product(product.id)

    assert db_session.get(Product, product.id) is None


def test_list_products_by_stock_level(services, make_product):
    make_product(name="Empty", stock=0, threshold=5)
    make_product(name="Critical", stock=4, threshold=5)
    make_product(name="Low", stock=7, threshold=5)
    make_product(name="Plenty", stock=50, threshold=5)

    names = lambda level: [p.name for p in services.catalog.list_products({"stock_level": level})[0]]
    assert names(StockLevel.OUT) == ["Empty"]
    assert names(StockLevel.CRITICAL) == ["Critical"]
    assert names(StockLevel.LOW) == ["Low"]
    assert names(StockLevel.OK) == ["Plenty"]

    assert [p.name for p in services.catalog.low_stock_products()] == ["Empty", "Critical", "Low"]
    with pytest.raises(ValidationError):
        services.catalog.list_products({"stock_level": "panic"})


def test_list_products_search_and_active(services, make_product):
    make_product(name="Ice Tea")
    archived = make_product(name="Iced Coffee")
    services.catalog.archive_product(archived.id)

    rows, total = services.catalog.list_products({"search": "ice", "is_active": True})

    assert total == 1
    assert rows[0].name == "Ice Tea"


def test_list_categories_sorted_by_name(services, db_session):
    services.catalog.create_category("Snacks")
    services.catalog.create_category("Boissons")

    assert [c.name for c in services.catalog.list_categories()] == ["Boissons", "Snacks"]
