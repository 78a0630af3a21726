"""
Pytest fixtures for clubledger backend tests.

Provides an in-memory database, per-test table cleanup, a test client and
small catalog/customer builders.
"""

import pytest

from clubledger import create_app
from clubledger.extensions import db, notifications
from clubledger.services import catalog_service, customer_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATIONS_ASYNC': False,
        'BUSINESS_TIMEZONE': 'UTC',
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
def events(app):
    """Record every published notification for the duration of a test."""
    received = []

    def recorder(event_type, payload):
        received.append((event_type, payload))

    notifications.subscribe('*', recorder, app=app)
    yield received
    notifications.unsubscribe('*', recorder, app=app)


@pytest.fixture(scope='function')
def cola(db_session):
    """Cola: stock 10, price 1.00."""
    return catalog_service.create_article(name="Cola", price="1.00", initial_stock="10", category="Soft drinks")


@pytest.fixture(scope='function')
def beer(db_session):
    return catalog_service.create_article(name="Beer", price="2.50", initial_stock="20", category="Beer")


@pytest.fixture(scope='function')
def alice(db_session):
    """Customer with 10.00 on account."""
    customer = customer_service.create_customer("Alice", "Ali")
    customer_service.top_up_account(customer.id, "10.00")
    return customer


@pytest.fixture(scope='function')
def bob(db_session):
    customer = customer_service.create_customer("Bob")
    customer_service.top_up_account(customer.id, "50.00")
    return customer
