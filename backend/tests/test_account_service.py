import pytest

from caisse.errors import ConflictError, NotFoundError, ValidationError
from caisse.models import AccountAdjustment, PaymentKind
from caisse.services import LineItem

from conftest import ADMIN, CAISSIER


def test_open_account_once(services, member_account):
    assert member_account.balance_cents == 0
    with pytest.raises(ConflictError):
        services.accounts.open_account(100)


def test_adjust_balance_logs_adjustment(services, member_account, db_session):
    entry = services.accounts.adjust_balance(100, 1500, "cash deposit", ADMIN)
    services.accounts.adjust_balance(100, -2000, "correction", ADMIN)

    assert entry.balance_before_cents == 0
    assert entry.balance_after_cents == 1500
    assert services.accounts.get_account(100).balance_cents == -500

    log = services.accounts.adjustments(100)
    assert [(a.amount_cents, a.balance_after_cents) for a in log] == [(1500, 1500), (-2000, -500)]
    assert all(a.admin_id == ADMIN for a in log)


def test_adjust_balance_validation(services, member_account, db_session):
    with pytest.raises(ValidationError):
        services.accounts.adjust_balance(100, 0, "nothing", ADMIN)
    with pytest.raises(ValidationError):
        services.accounts.adjust_balance(100, 100, "  ", ADMIN)
    with pytest.raises(NotFoundError):
        services.accounts.adjust_balance(404, 100, "unknown member", ADMIN)
    assert db_session.query(AccountAdjustment).count() == 0


def test_balances_have_no_floor(services, make_product, member_account):
    product = make_product(stock=100, price=1000)

    for _ in range(3):
        services.sales.create_sale(
            cashier_id=CAISSIER,
            payment_kind=PaymentKind.CASH,
            buyer_id=100,
            lines=[LineItem(product.id, 5, 1000)],
        )

    assert services.accounts.get_account(100).balance_cents == -15000


def test_history_and_statistics(services, make_product, member_account):
    product = make_product(stock=10, price=400)
    services.accounts.open_account(200, initial_balance_cents=2500)
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH, buyer_id=100,
                               lines=[LineItem(product.id, 1, 400)])

    rows, total = services.accounts.history(100)
    assert total == 1
    assert rows[0].buyer_id == 100

    stats = services.accounts.statistics()
    assert stats["accounts"] == 2
    assert stats["negative_accounts"] == 1
    assert stats["total_debt_cents"] == 400
    assert stats["total_credit_cents"] == 2500
    assert stats["net_balance_cents"] == 2100

    rows, total = services.accounts.list_accounts(negative_only=True)
    assert [a.member_id for a in rows] == [100]


def test_close_account_refused_once_used(services, member_account):
    services.accounts.open_account(300)
    services.accounts.close_account(300)
    assert services.accounts.find_account(300) is None

    services.accounts.adjust_balance(100, 100, "welcome credit", ADMIN)
    with pytest.raises(ConflictError):
        services.accounts.close_account(100)


def test_member_statistics(services, make_product, member_account):
    product = make_product(stock=20, price=300)
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH, buyer_id=100,
                               lines=[LineItem(product.id, 2, 300)])
    last = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH, buyer_id=100,
                                      lines=[LineItem(product.id, 1, 300)])
    refunded = services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH, buyer_id=100,
                                          lines=[LineItem(product.id, 5, 300)])
    services.sales.cancel_sale(refunded.id, ADMIN, "wrong member")
    # Someone else's purchase
    services.sales.create_sale(cashier_id=CAISSIER, payment_kind=PaymentKind.CASH,
                               lines=[LineItem(product.id, 1, 300)])

    stats = services.accounts.member_statistics(100)

    assert stats["balance_cents"] == -900
    assert stats["total_spent_cents"] == 900
    assert stats["transaction_count"] == 2
    assert stats["average_spend_cents"] == 450
    assert stats["last_transaction_at"] == last.to_dict()["created_at"]


def test_member_statistics_without_purchases(services, member_account):
    stats = services.accounts.member_statistics(100)

    assert stats["transaction_count"] == 0
    assert stats["average_spend_cents"] == 0
    assert stats["last_transaction_at"] is None

    with pytest.raises(NotFoundError):
        services.accounts.member_statistics(555)
