"""
Pytest fixtures for cartonstock backend tests.

Provides test database setup, locations/catalog fixtures, actor contexts and
identity headers for the test client.
"""

import pytest
from cartonstock import create_app
from cartonstock.extensions import db
from cartonstock.models import Location, Product, Customer
from cartonstock.permissions import ActorContext
from cartonstock.services import stock_ledger


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_LOCATION_ID': None,
        'BUSINESS_TIMEZONE': 'UTC',
        'LOW_STOCK_THRESHOLD': 10,
        'CONCURRENCY_RETRY_ATTEMPTS': 3,
        'CONCURRENCY_BACKOFF_SECONDS': 0,
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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """The central store (the designated fulfillment location)."""
    loc = Location(name="Main Store", type="store")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def shop(db_session):
    loc = Location(name="Shop 1", type="shop")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def other_shop(db_session):
    loc = Location(name="Shop 2", type="shop")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def crackers(db_session):
    """Cream Crackers at N4,500 per carton."""
    product = Product(name="Cream Crackers", price_per_carton_cents=450000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def digestive(db_session):
    product = Product(name="Digestive Biscuits", price_per_carton_cents=520000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def set_stock(db_session):
    """Write a live count and commit: set_stock(product, location, cartons)."""
    def _set(product, location, cartons):
        stock_ledger.set_stock(product.id, location.id, cartons)
        db_session.commit()
    return _set


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def admin():
    return ActorContext(user_id="admin-1", role="admin")


@pytest.fixture
def store_staff():
    return ActorContext(user_id="store-1", role="store_staff")


@pytest.fixture
def shop_staff(shop):
    return ActorContext(user_id="shop-1", role="shop_staff", location_id=shop.id)


@pytest.fixture
def customer_actor():
    return ActorContext(user_id="cust-user-1", role=None)


@pytest.fixture
def customer(db_session, customer_actor):
    """Approved customer linked to customer_actor."""
    record = Customer(name="Ada Wholesale", phone="08030000000", user_id=customer_actor.user_id, approved=True)
    db_session.add(record)
    db_session.commit()
    return record


def actor_headers(actor: ActorContext) -> dict:
    """Identity headers the upstream gateway would set for this actor."""
    headers = {"X-Actor-Id": actor.user_id}
    if actor.role:
        headers["X-Actor-Role"] = actor.role
    if actor.location_id is not None:
        headers["X-Actor-Location"] = str(actor.location_id)
    return headers


@pytest.fixture
def headers_for():
    return actor_headers
