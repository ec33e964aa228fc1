"""
Pytest fixtures for orderledger backend tests.

Provides test database setup, a test client, and factories for users,
stock items, finished-good lots, and orders.
"""

from decimal import Decimal

import pytest

from orderledger import create_app
from orderledger.extensions import db
from orderledger.models import (
    AccessLevel,
    ItemType,
    Order,
    ProcessedGood,
    StockItem,
    User,
    UserModuleAccess,
)
from orderledger.services import order_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_ATTEMPTS': 2,
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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes bypass the append-only listeners)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _grant(db_session, user, **levels):
    for module, level in levels.items():
        db_session.add(UserModuleAccess(user_id=user.id, module_name=module, access_level=AccessLevel(level)))


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Admin on both sales and operations."""
    user = User(username="admin", full_name="Asha Admin", email="admin@orderledger.local")
    db_session.add(user)
    db_session.flush()
    _grant(db_session, user, sales="admin", operations="admin")
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def clerk_user(db_session):
    """Read-write on sales, read-only on operations."""
    user = User(username="clerk", email="clerk@orderledger.local")
    db_session.add(user)
    db_session.flush()
    _grant(db_session, user, sales="read-write", operations="read-only")
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def viewer_user(db_session):
    """Read-only on sales, no operations access."""
    user = User(username="viewer")
    db_session.add(user)
    db_session.flush()
    _grant(db_session, user, sales="read-only")
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_stock_item(db_session):
    counter = {"n": 0}

    def _make(*, name="Mango pulp", item_type=ItemType.RAW_MATERIAL, unit="kg", lot_id=None):
        counter["n"] += 1
        item = StockItem(
            item_type=item_type,
            name=name,
            lot_id=lot_id or f"RM-LOT-{counter['n']:03d}",
            unit=unit,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def stock_item(make_stock_item):
    return make_stock_item()


@pytest.fixture(scope='function')
def make_lot(db_session):
    """Finished-good lot factory; quantity_available starts equal to quantity_created."""
    counter = {"n": 0}

    def _make(quantity="30", *, product_type="Mango Jam", unit="kg", lot_id=None):
        counter["n"] += 1
        qty = Decimal(str(quantity))
        good = ProcessedGood(
            lot_id=lot_id or f"PG-LOT-{counter['n']:03d}",
            product_type=product_type,
            unit=unit,
            quantity_created=qty,
            quantity_available=qty,
        )
        db_session.add(good)
        db_session.commit()
        return good

    return _make


@pytest.fixture(scope='function')
def lot(make_lot):
    return make_lot("30")


@pytest.fixture(scope='function')
def make_order(db_session, admin_user):
    def _make(customer_name="Green Grocers", user_id=None):
        return order_service.create_order(customer_name=customer_name, user_id=user_id or admin_user.id)

    return _make


@pytest.fixture(scope='function')
def order(make_order):
    return make_order()


@pytest.fixture(scope='function')
def completed_order(db_session, admin_user, make_order, make_lot):
    """Order with one item (1000 cents) paid in full."""
    good = make_lot("10")
    o = make_order()
    order_service.add_item(
        order_id=o.id, processed_good_id=good.id, quantity=10, unit_price_cents=100, user_id=admin_user.id
    )
    order_service.add_payment(order_id=o.id, amount_cents=1000, payment_mode="Cash", user_id=admin_user.id)
    return db_session.get(Order, o.id)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return {"X-User-Id": str(admin_user.id)}


@pytest.fixture(scope='function')
def clerk_headers(clerk_user):
    return {"X-User-Id": str(clerk_user.id)}


@pytest.fixture(scope='function')
def viewer_headers(viewer_user):
    return {"X-User-Id": str(viewer_user.id)}
