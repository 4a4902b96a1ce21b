"""
Pytest fixtures for salon POS backend tests.

Provides the app (in-memory SQLite), per-test table wipe, test client and
catalog / register seed data for two tenants.
"""

import pytest

from salonpos import create_app
from salonpos.extensions import db
from salonpos.models import Appointment, Product, Service
from salonpos.models.catalog import CATALOG_STATUS_INACTIVE
from salonpos.services import cash_register_service


BUSINESS_ID = 1
OTHER_BUSINESS_ID = 2
ACTOR_ID = 10


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
        gateway = app.extensions.pop('payment_gateway', None)
        if gateway is not None:
            gateway.close()


@pytest.fixture(scope='function')
def products(db_session):
    """Shampoo (15.00, 10 in stock), wax (8.00, 1 in stock), retired gel."""
    shampoo = Product(business_id=BUSINESS_ID, name="Shampoo", price=15.0, stock=10)
    wax = Product(business_id=BUSINESS_ID, name="Hair Wax", price=8.0, stock=1)
    gel = Product(business_id=BUSINESS_ID, name="Old Gel", price=5.0, stock=4, status=CATALOG_STATUS_INACTIVE)
    db_session.add_all([shampoo, wax, gel])
    db_session.commit()
    return {"shampoo": shampoo.id, "wax": wax.id, "gel": gel.id}


@pytest.fixture(scope='function')
def services(db_session):
    """Haircut (25.00), colour (60.00), retired perm."""
    haircut = Service(business_id=BUSINESS_ID, name="Haircut", price=25.0, duration_minutes=30)
    colour = Service(business_id=BUSINESS_ID, name="Colour", price=60.0, duration_minutes=90)
    perm = Service(business_id=BUSINESS_ID, name="Perm", price=40.0, status=CATALOG_STATUS_INACTIVE)
    db_session.add_all([haircut, colour, perm])
    db_session.commit()
    return {"haircut": haircut.id, "colour": colour.id, "perm": perm.id}


@pytest.fixture(scope='function')
def other_business_product(db_session):
    product = Product(business_id=OTHER_BUSINESS_ID, name="Foreign Shampoo", price=12.0, stock=5)
    db_session.add(product)
    db_session.commit()
    return product.id


@pytest.fixture(scope='function')
def appointment(db_session):
    appt = Appointment(business_id=BUSINESS_ID)
    db_session.add(appt)
    db_session.commit()
    return appt.id


@pytest.fixture(scope='function')
def open_register(db_session):
    """Open a register for BUSINESS_ID with 1000.00 in the drawer."""
    session = cash_register_service.open_session(BUSINESS_ID, ACTOR_ID, 1000.0)
    return session.id


def context_headers(business_id: int = BUSINESS_ID, actor_id: int = ACTOR_ID) -> dict:
    """Headers the upstream auth layer forwards."""
    return {'X-Business-Id': str(business_id), 'X-Actor-Id': str(actor_id)}
