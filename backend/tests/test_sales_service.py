"""
Sale processor tests: atomic creation, cancellation round trip, payment rules.
"""

import logging

import pytest

from caisse.errors import (
    AlreadyCancelledError,
    InsufficientStockError,
    InvalidPaymentReferenceError,
    NotFoundError,
    ValidationError,
)
from caisse.models import (
    MemberAccount,
    MovementKind,
    PaymentKind,
    Product,
    SaleStatus,
    SaleTransaction,
    StockMovement,
)
from caisse.services import LineItem

from conftest import ADMIN, CAISSIER


def _stock(db_session, product_id):
    return db_session.get(Product, product_id).stock_actuel


def test_cash_sale_scenario(services, make_product, db_session):
    product = make_product(stock=10, price=250)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        lines=[LineItem(product_id=product.id, quantity=4, unit_price_cents=250)],
    )

    assert tx.total_cents == 1000
    assert tx.status == SaleStatus.VALID
    assert len(tx.lines) == 1
    assert tx.lines[0].line_total_cents == 1000
    assert _stock(db_session, product.id) == 6

    movements = db_session.query(StockMovement).filter_by(sale_transaction_id=tx.id).all()
    assert len(movements) == 1
    m = movements[0]
    assert m.kind == MovementKind.OUT
    assert m.quantity_delta == -4
    assert (m.stock_before, m.stock_after) == (10, 6)
    assert m.reference == f"SALE-{tx.id}"


def test_unit_price_defaults_to_product_price(services, make_product):
    product = make_product(stock=5, price=180)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        lines=[{"product_id": product.id, "quantity": 2}],
    )

    assert tx.total_cents == 360


def test_sale_is_all_or_nothing(services, make_product, db_session):
    a = make_product(stock=5)
    b = make_product(stock=5)
    c = make_product(stock=1)
    tx_before = db_session.query(SaleTransaction).count()
    mv_before = db_session.query(StockMovement).count()

    with pytest.raises(InsufficientStockError) as exc_info:
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=PaymentKind.CASH,
            lines=[
                LineItem(a.id, 2, 100),
                LineItem(b.id, 2, 100),
                LineItem(c.id, 3, 100),
            ],
        )

    assert exc_info.value.product_id == c.id
    assert [_stock(db_session, p.id) for p in (a, b, c)] == [5, 5, 1]
    assert db_session.query(SaleTransaction).count() == tx_before
    assert db_session.query(StockMovement).count() == mv_before


def test_quantities_are_aggregated_per_product(services, make_product, db_session):
    product = make_product(stock=5)

    with pytest.raises(InsufficientStockError) as exc_info:
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=PaymentKind.CASH,
            lines=[LineItem(product.id, 3, 100), LineItem(product.id, 3, 100)],
        )

    assert exc_info.value.requested == 6
    assert _stock(db_session, product.id) == 5


def test_each_line_gets_its_own_movement(services, make_product, db_session):
    product = make_product(stock=5)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        lines=[LineItem(product.id, 2, 100), LineItem(product.id, 1, 100)],
    )

    movements = (
        db_session.query(StockMovement)
        .filter_by(sale_transaction_id=tx.id)
        .order_by(StockMovement.id)
        .all()
    )
    assert len(tx.lines) == 2
    assert [m.quantity_delta for m in movements] == [-2, -1]
    assert [(m.stock_before, m.stock_after) for m in movements] == [(5, 3), (3, 2)]
    assert services.stock.audit_product(product.id)["consistent"] is True


def test_line_movements_follow_product_id_order(services, make_product, db_session):
    first = make_product(stock=5)
    second = make_product(stock=5)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        lines=[LineItem(second.id, 1, 100), LineItem(first.id, 2, 100), LineItem(second.id, 3, 100)],
    )

    movements = (
        db_session.query(StockMovement)
        .filter_by(sale_transaction_id=tx.id)
        .order_by(StockMovement.id)
        .all()
    )
    assert [(m.product_id, m.quantity_delta) for m in movements] == [
        (first.id, -2), (second.id, -1), (second.id, -3),
    ]

    services.sales.cancel_sale(tx.id, ADMIN, "customer left")

    restores = (
        db_session.query(StockMovement)
        .filter_by(sale_transaction_id=tx.id, kind=MovementKind.IN)
        .order_by(StockMovement.id)
        .all()
    )
    assert [(m.product_id, m.quantity_delta) for m in restores] == [
        (first.id, 2), (second.id, 1), (second.id, 3),
    ]
    assert {m.reference for m in restores} == {f"CANCEL-{tx.id}"}
    assert _stock(db_session, first.id) == 5
    assert _stock(db_session, second.id) == 5


@pytest.mark.parametrize("line", [
    {"product_id": None, "quantity": 1},
    {"product_id": "1", "quantity": 1},
    {"product_id": True, "quantity": 1},
    {"product_id": 1, "quantity": True},
])
def test_line_types_are_checked(services, make_product, db_session, line):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=PaymentKind.CASH,
            lines=[LineItem(product.id, 1, 100), line],
        )

    assert _stock(db_session, product.id) == 5
    assert db_session.query(SaleTransaction).count() == 0


def test_unknown_or_archived_product(services, make_product):
    product = make_product(stock=5)
    services.catalog.archive_product(product.id)

    with pytest.raises(NotFoundError):
        services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                   lines=[LineItem(product.id, 1, 100)])
    with pytest.raises(NotFoundError):
        services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                   lines=[LineItem(9999, 1, 100)])


@pytest.mark.parametrize("kind", [PaymentKind.CHEQUE, PaymentKind.CARD])
@pytest.mark.parametrize("reference", [None, "", "   "])
def test_cheque_and_card_need_a_reference(services, make_product, kind, reference):
    product = make_product(stock=5)

    with pytest.raises(InvalidPaymentReferenceError):
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=kind,
            payment_reference=reference,
            lines=[LineItem(product.id, 1, 100)],
        )


def test_cheque_with_reference(services, make_product):
    product = make_product(stock=5)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CHEQUE,
        payment_reference=" CHQ-0042 ",
        lines=[LineItem(product.id, 1, 100)],
    )

    assert tx.payment_reference == "CHQ-0042"


def test_sale_needs_lines_and_known_payment_kind(services, make_product):
    product = make_product(stock=5)
    with pytest.raises(ValidationError):
        services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH, lines=[])
    with pytest.raises(ValidationError):
        services.sales.create_sale(cashier_id=CAISSIER, payment_kind="bitcoin",
                                   lines=[LineItem(product.id, 1, 100)])
    with pytest.raises(ValidationError):
        services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                   lines=[LineItem(product.id, 0, 100)])


def test_change_entry_has_no_lines_and_zero_total(services, make_product):
    product = make_product(stock=5)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CHANGE,
        change_given_cents=500,
    )
    assert tx.total_cents == 0
    assert tx.lines == []
    assert tx.change_given_cents == 500

    with pytest.raises(ValidationError):
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=PaymentKind.CHANGE,
            lines=[LineItem(product.id, 1, 100)],
        )


def test_sale_debits_buyer_account(services, make_product, member_account, db_session):
    product = make_product(stock=5, price=300)

    services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        buyer_id=member_account.member_id,
        lines=[LineItem(product.id, 2, 300)],
    )

    account = db_session.query(MemberAccount).filter_by(member_id=100).one()
    assert account.balance_cents == -600


def test_buyer_without_account_is_left_alone(services, make_product, db_session):
    product = make_product(stock=5)

    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        buyer_id=555,
        lines=[LineItem(product.id, 1, 100)],
    )

    assert tx.buyer_id == 555
    assert db_session.query(MemberAccount).count() == 0


def test_cancel_restores_stock_and_account(services, make_product, member_account, db_session):
    product = make_product(stock=10, price=250)
    tx = services.sales.create_sale(
        cashier_id=CAISSIER,
        payment_kind=PaymentKind.CASH,
        buyer_id=member_account.member_id,
        lines=[LineItem(product.id, 4, 250)],
    )

    cancelled = services.sales.cancel_sale(tx.id, ADMIN, "customer changed mind")

    assert cancelled.status == SaleStatus.CANCELLED
    assert cancelled.cancelled_by_id == ADMIN
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "customer changed mind"
    assert _stock(db_session, product.id) == 10
    assert services.accounts.get_account(100).balance_cents == 0

    restore = (
        db_session.query(StockMovement)
        .filter_by(sale_transaction_id=tx.id, kind=MovementKind.IN)
        .one()
    )
    assert restore.quantity_delta == 4
    assert restore.reference == f"CANCEL-{tx.id}"
    assert services.stock.audit_product(product.id)["consistent"] is True


def test_cancel_twice_is_refused(services, make_product, db_session):
    product = make_product(stock=10)
    tx = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                    lines=[LineItem(product.id, 1, 100)])
    services.sales.cancel_sale(tx.id, ADMIN, "wrong product")

    with pytest.raises(AlreadyCancelledError):
        services.sales.cancel_sale(tx.id, ADMIN, "wrong product again")

    assert _stock(db_session, product.id) == 10


def test_cancel_refusals_are_logged(services, make_product, caplog):
    product = make_product(stock=10)
    tx = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                    lines=[LineItem(product.id, 1, 100)])
    services.sales.cancel_sale(tx.id, ADMIN, "wrong product")

    with caplog.at_level(logging.WARNING, logger="caisse"):
        with pytest.raises(AlreadyCancelledError):
            services.sales.cancel_sale(tx.id, ADMIN, "wrong product again")
        with pytest.raises(NotFoundError):
            services.sales.cancel_sale(424242, ADMIN, "does not exist")

    refusals = [r for r in caplog.records if r.levelno == logging.WARNING and "refused" in r.getMessage()]
    assert len(refusals) == 2
    assert f"sale {tx.id}" in refusals[0].getMessage()


def test_cancel_requires_a_reason(services, make_product):
    product = make_product(stock=10)
    tx = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                    lines=[LineItem(product.id, 1, 100)])

    with pytest.raises(ValidationError):
        services.sales.cancel_sale(tx.id, ADMIN, "oops")
    with pytest.raises(ValidationError):
        services.sales.cancel_sale(tx.id, ADMIN, "      ")


def test_cancel_unknown_transaction(services, db_session):
    with pytest.raises(NotFoundError):
        services.sales.cancel_sale(424242, ADMIN, "does not exist")


def test_session_entries_cannot_be_cancelled(services, open_session):
    session = open_session(fund=5000)

    with pytest.raises(ValidationError):
        services.sales.cancel_sale(session.fund_transaction_id, ADMIN, "undo the fund")


def test_list_sales_filters(services, make_product):
    product = make_product(stock=10)
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(product.id, 1, 100)])
    card = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CARD,
                                      payment_reference="TPE-1", lines=[LineItem(product.id, 1, 100)])
    services.sales.cancel_sale(card.id, ADMIN, "duplicate payment")

    rows, total = services.sales.list_sales({"payment_kind": PaymentKind.CASH})
    assert total == 1
    rows, total = services.sales.list_sales({"status": SaleStatus.CANCELLED})
    assert [r.id for r in rows] == [card.id]
