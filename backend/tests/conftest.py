"""
Pytest fixtures for ShopTrack backend tests.

Provides an in-memory database, accounts for an admin and two customers,
and a small catalog.
"""

import pytest

from shoptrack import create_app
from shoptrack.extensions import db
from shoptrack.models.accounts import ROLE_ADMIN
from shoptrack.services import account_service, catalog_service
from shoptrack.services.access_service import SYSTEM, load_actor


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'CHECKOUT_DOUBLE_DECREMENT': False,
        'STORAGE_RETRY_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test, same schema."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def legacy_checkout(app, monkeypatch):
    """Checkout decrements stock again on top of the cart reservation."""
    monkeypatch.setitem(app.config, 'CHECKOUT_DOUBLE_DECREMENT', True)


def make_customer(user_id: str):
    account_service.create_account(user_id, f"{user_id}@example.com")
    return load_actor(user_id)


@pytest.fixture(scope='function')
def admin(db_session):
    account_service.create_account("admin-1", "admin@example.com")
    account_service.grant_role(SYSTEM, "admin-1", ROLE_ADMIN)
    return load_actor("admin-1")


@pytest.fixture(scope='function')
def alice(db_session):
    return make_customer("alice")


@pytest.fixture(scope='function')
def bob(db_session):
    return make_customer("bob")


@pytest.fixture(scope='function')
def category(admin):
    return catalog_service.create_category(admin, {"name": "Kitchen"})


@pytest.fixture(scope='function')
def product(admin, category):
    """Ten units at 100.00, no discount."""
    return catalog_service.create_product(admin, {
        "sku": "KIT-001",
        "name": "Chef Knife",
        "price": "100.00",
        "stock": 10,
        "category_id": category.id,
    })


@pytest.fixture(scope='function')
def other_product(admin, category):
    return catalog_service.create_product(admin, {
        "sku": "KIT-002",
        "name": "Cutting Board",
        "price": "25.50",
        "stock": 5,
        "category_id": category.id,
    })

