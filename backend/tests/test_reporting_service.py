from datetime import datetime

import pytest

from caisse.errors import ValidationError
from caisse.models import PaymentKind, SessionStatus
from caisse.services import LineItem

from conftest import ADMIN, CAISSIER, OTHER_CAISSIER, TRESORIER


def test_sales_journal_totals_per_payment_kind(services, make_product, open_session):
    product = make_product(stock=50, price=500)
    open_session(fund=1000)
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(product.id, 2, 500)])
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CARD,
                               payment_reference="TPE-1", lines=[LineItem(product.id, 1, 500)])
    cheque = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CHEQUE,
                                        payment_reference="CHQ-7", lines=[LineItem(product.id, 3, 500)])
    services.sales.cancel_sale(cheque.id, ADMIN, "cheque bounced")

    journal = services.reports.sales_journal()

    assert journal["by_payment_kind"][PaymentKind.CASH] == {"count": 1, "total_cents": 1000}
    assert journal["by_payment_kind"][PaymentKind.CARD] == {"count": 1, "total_cents": 500}
    assert journal["by_payment_kind"][PaymentKind.CHEQUE] == {"count": 0, "total_cents": 0}
    assert journal["total_cents"] == 1500
    assert journal["cancelled"] == {"count": 1, "total_cents": 1500}
    # Fund entries are not revenue
    assert PaymentKind.FUND_RECEIVED not in journal["by_payment_kind"]


def test_sales_journal_respects_date_range(services, make_product):
    product = make_product(stock=5)
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(product.id, 1, 100)])

    journal = services.reports.sales_journal(date_from="1999-01-01", date_to="1999-12-31")

    assert journal["total_cents"] == 0


def test_session_report_sums_absolute_variances(services, open_session):
    over = open_session(fund=10000, cashier_id=CAISSIER)
    short = open_session(fund=10000, cashier_id=OTHER_CAISSIER)
    services.sessions.declare_closing(over.id, CAISSIER, 10200)
    services.sessions.declare_closing(short.id, OTHER_CAISSIER, 9500)
    services.sessions.validate_closing(short.id, TRESORIER, 9500, outcome=SessionStatus.ANOMALY)

    report = services.reports.session_report()

    assert report["session_count"] == 2
    assert report["total_variance_cents"] == -300
    assert report["total_abs_variance_cents"] == 700
    assert report["anomaly_count"] == 1
    assert report["pending_count"] == 1


def test_stock_valuation(services, make_product):
    make_product(name="Cola", stock=10, price=150, purchase=60)
    archived = make_product(name="Old", stock=3, price=100, purchase=50)
    services.catalog.archive_product(archived.id)

    valuation = services.reports.stock_valuation()

    assert [i["name"] for i in valuation["items"]] == ["Cola"]
    assert valuation["total_units"] == 10
    assert valuation["total_purchase_value_cents"] == 600
    assert valuation["total_sale_value_cents"] == 1500


def _sale_at(services, db_session, when, lines, kind=PaymentKind.CASH, reference=None):
    tx = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=kind,
                                    payment_reference=reference, lines=lines)
    tx.created_at = when
    db_session.commit()
    return tx


def test_revenue_by_period(services, make_product, db_session):
    product = make_product(stock=50, price=500)
    _sale_at(services, db_session, datetime(2026, 1, 15, 10, 0), [LineItem(product.id, 2, 500)])
    _sale_at(services, db_session, datetime(2026, 1, 15, 16, 30), [LineItem(product.id, 1, 500)],
             kind=PaymentKind.CARD, reference="TPE-9")
    _sale_at(services, db_session, datetime(2026, 1, 20, 9, 0), [LineItem(product.id, 3, 500)])
    refunded = _sale_at(services, db_session, datetime(2026, 2, 2, 11, 0), [LineItem(product.id, 4, 500)])
    services.sales.cancel_sale(refunded.id, ADMIN, "returned goods")
    _sale_at(services, db_session, datetime(2026, 2, 3, 11, 0), [LineItem(product.id, 1, 500)])

    daily = services.reports.revenue_by_period("2026-01-01", "2026-01-31", period="day")

    assert daily["rows"] == [
        {"period": "2026-01-15", "transaction_count": 2, "total_cents": 1500},
        {"period": "2026-01-20", "transaction_count": 1, "total_cents": 1500},
    ]
    assert daily["total_cents"] == 3000
    assert daily["average_basket_cents"] == 1000

    monthly = services.reports.revenue_by_period(period="month")

    assert [(r["period"], r["transaction_count"], r["total_cents"]) for r in monthly["rows"]] == [
        ("2026-01", 3, 3000),
        ("2026-02", 1, 500),
    ]
    assert monthly["average_basket_cents"] == 875

    with pytest.raises(ValidationError):
        services.reports.revenue_by_period(period="week")


def test_sales_by_product(services, make_product, db_session):
    drinks = services.catalog.create_category("Boissons")
    cola = make_product(name="Cola", stock=50, price=150, category_id=drinks.id)
    juice = make_product(name="Jus", stock=50, price=200, category_id=drinks.id)
    chips = make_product(name="Chips", stock=50, price=100)

    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(cola.id, 2, 150), LineItem(chips.id, 1, 100)])
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(cola.id, 2, 100), LineItem(juice.id, 1, 200)])
    cancelled = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                                           lines=[LineItem(juice.id, 10, 200)])
    services.sales.cancel_sale(cancelled.id, ADMIN, "entered twice")

    report = services.reports.sales_by_product()

    assert [(p["name"], p["units_sold"], p["revenue_cents"]) for p in report["products"]] == [
        ("Cola", 4, 500),
        ("Jus", 1, 200),
        ("Chips", 1, 100),
    ]
    cola_row = report["products"][0]
    assert cola_row["category"] == "Boissons"
    assert cola_row["average_unit_price_cents"] == 125
    assert report["by_category"] == [
        {"category": "Boissons", "units_sold": 5, "revenue_cents": 700},
        {"category": None, "units_sold": 1, "revenue_cents": 100},
    ]
    assert report["total_revenue_cents"] == 800
