"""
Pytest fixtures for StockFlow backend tests.

Provides test database setup, tenant fixtures, a test client, and
deterministic in-memory ledgers for engine tests.
"""

import itertools
from datetime import datetime, timedelta

import pytest

from stockflow import create_app
from stockflow.extensions import db
from stockflow.ledger import InventoryLedger, NewProduct, VariantSpec
from stockflow.models import Organization, Store
from stockflow.services.ledger_service import get_registry


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def sequential_ids(prefix: str = "id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
    """Create fresh database (and empty ledger cache) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_registry().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        get_registry().clear()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store_a(db_session, org_a):
    """Create Store A in Organization A."""
    store = Store(org_id=org_a.id, name="Store A1", code="A1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, org_a):
    """Second store in Organization A."""
    store = Store(org_id=org_a.id, name="Store A2", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, org_b):
    """Create Store B in Organization B."""
    store = Store(org_id=org_b.id, name="Store B1", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


# -----------------------------------------------------------------------------
# Engine fixtures (no database)
# -----------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def ledger(clock):
    """Empty ledger with predictable ids and a controllable clock."""
    return InventoryLedger(id_factory=sequential_ids(), clock=clock)


@pytest.fixture
def widget(ledger):
    """Tracked product without variants."""
    return ledger.add_product(NewProduct(name="Widget", category="Electronics"))


@pytest.fixture
def shirt(ledger):
    """Tracked product with Size and Color variants."""
    return ledger.add_product(
        NewProduct(
            name="T-Shirt",
            category="Clothing",
            variants=(
                VariantSpec(name="Size", options=("S", "M", "L")),
                VariantSpec(name="Color", options=("Red", "Blue")),
            ),
        )
    )


@pytest.fixture
def repair_service(ledger):
    """Non-tracked product priced through its standing-price layer."""
    return ledger.add_product(
        NewProduct(
            name="Phone Repair",
            category="Services",
            track_quantity=False,
            standing_cost_cents=1500,
            standing_sell_price_cents=5000,
        )
    )
