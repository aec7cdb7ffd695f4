"""
Pytest fixtures for the caisse backend tests.

Provides an in-memory database, the wired service objects and small
factories for products, accounts and open cash sessions.
"""

import pytest

from caisse import create_app
from caisse.extensions import db


ADMIN = 1
TRESORIER = 2
CAISSIER = 3
OTHER_CAISSIER = 4
STOCKISTE = 5


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CAISSE_USER_ROLES': {
            ADMIN: ['admin'],
            TRESORIER: ['tresorier'],
            CAISSIER: ['caissier'],
            OTHER_CAISSIER: ['caissier'],
            STOCKISTE: ['gestionnaire_stock'],
        },
        'CAISSE_USER_PERMISSION_OVERRIDES': {
            STOCKISTE: {'stock.inventaire': False},
            CAISSIER: {'caisse.annuler_vente': True},
        },
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def services(app, db_session):
    """Wired ledger services bound to the test database."""
    return app.extensions['caisse']


@pytest.fixture(scope='function')
def make_product(services):
    """Factory: product with initial stock recorded through the ledger."""
    counter = {'n': 0}

    def _make(name=None, stock=10, price=250, purchase=100, threshold=0, category_id=None):
        counter['n'] += 1
        return services.catalog.create_product(
            name=name or f"Product {counter['n']}",
            sale_price_cents=price,
            purchase_price_cents=purchase,
            reorder_threshold=threshold,
            initial_stock=stock,
            category_id=category_id,
            actor_id=ADMIN,
        )

    return _make


@pytest.fixture(scope='function')
def member_account(services):
    """Member 100 with an empty account."""
    return services.accounts.open_account(100)


@pytest.fixture(scope='function')
def open_session(services):
    """Factory: session with the given fund, accepted by the cashier."""
    def _open(fund=10000, cashier_id=CAISSIER, supervisor_id=TRESORIER):
        session = services.sessions.open_fund(supervisor_id, cashier_id, fund)
        return services.sessions.accept_fund(session.id, cashier_id)

    return _open
