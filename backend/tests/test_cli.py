from caisse.models import Product

from conftest import ADMIN, CAISSIER, STOCKISTE, TRESORIER


def test_stock_adjust_requires_permission(app, make_product, db_session):
    product = make_product(stock=10)
    runner = app.test_cli_runner()

    denied = runner.invoke(args=["stock", "adjust", "--reason", "broken", "--actor", str(CAISSIER),
                                 str(product.id), "--", "-2"])
    assert denied.exit_code == 1
    assert db_session.get(Product, product.id).stock_actuel == 10

    result = runner.invoke(args=["stock", "adjust", "--reason", "broken", "--actor", str(STOCKISTE),
                                 str(product.id), "--", "-2"])
    assert result.exit_code == 0, result.output
    assert "10 -> 8" in result.output
    assert db_session.get(Product, product.id).stock_actuel == 8


def test_stock_count_respects_revoked_override(app, make_product, db_session):
    product = make_product(stock=10)
    runner = app.test_cli_runner()

    denied = runner.invoke(args=["stock", "count", str(product.id), "7", "--actor", str(STOCKISTE)])
    assert denied.exit_code == 1

    result = runner.invoke(args=["stock", "count", str(product.id), "7", "--actor", str(ADMIN)])
    assert result.exit_code == 0, result.output
    assert db_session.get(Product, product.id).stock_actuel == 7


def test_stock_history_and_audit(app, make_product, db_session):
    product = make_product(stock=4)
    runner = app.test_cli_runner()

    history = runner.invoke(args=["stock", "history", str(product.id)])
    assert history.exit_code == 0
    assert "in" in history.output

    audit = runner.invoke(args=["stock", "audit"])
    assert audit.exit_code == 0
    assert "PASS" in audit.output

    missing = runner.invoke(args=["stock", "history", "9999"])
    assert missing.exit_code == 1


def test_sessions_pending_and_summary(app, services, open_session):
    session = open_session(fund=10000)
    services.sessions.declare_closing(session.id, CAISSIER, 9950)
    runner = app.test_cli_runner()

    pending = runner.invoke(args=["sessions", "pending", "--supervisor-id", str(TRESORIER)])
    assert pending.exit_code == 0
    assert "-0.50" in pending.output

    summary = runner.invoke(args=["sessions", "summary", str(session.id)])
    assert summary.exit_code == 0
    assert "Variance: -0.50" in summary.output


def test_perms_check(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["perms", "check", str(CAISSIER), "caisse.encaisser"])
    assert "PASS" in result.output
    result = runner.invoke(args=["perms", "check", str(CAISSIER), "compta.consulter"])
    assert "FAIL" in result.output
