"""
Pytest fixtures for possync backend tests.

Provides test database setup, store/engine fixtures, and test client.
"""

import json

import pytest
from possync import create_app, get_engine
from possync.extensions import db
from possync.services.reconciliation_service import build_engine
from possync.services.sync_queue import OperationEnvelope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SYNC_COMMIT_ATTEMPTS': 1,
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
def engine(app, db_session):
    """The app's reconciliation engine, on a clean database."""
    return get_engine(app)


@pytest.fixture(scope='function')
def dead_letter_engine(db_session):
    """Engine with dead-lettering of exhausted/rejected operations enabled."""
    return build_engine(db_session, dead_letter_exhausted=True, commit_attempts=1)


@pytest.fixture(scope='function')
def products(engine):
    return engine.products


@pytest.fixture(scope='function')
def queue(engine):
    return engine.queue


@pytest.fixture(scope='function')
def product_p1(products):
    """Product p1 at version 1 with 10 on hand."""
    return products.reconcile({"id": "p1", "name": "Cola", "price": 2.0, "stock": 10, "version": 1})


def make_op(op_id, entity_type, payload, entity_id=None, device_id="dev-1"):
    """Build an envelope the way a device would send it."""
    return OperationEnvelope.from_dict({
        "id": op_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "operation": "create",
        "payload": payload,
        "device_id": device_id,
    })


def sale_payload(sale_id, *lines, user_id="u1"):
    """lines: (product_id, quantity, price) tuples."""
    return {
        "sale": {"id": sale_id, "user_id": user_id, "device_id": "dev-1"},
        "items": [
            {"product_id": product_id, "quantity": quantity, "price": price}
            for product_id, quantity, price in lines
        ],
    }


def purchase_payload(purchase_id, *lines, supplier="Acme Supply"):
    return {
        "purchase": {"id": purchase_id, "supplier": supplier, "user_id": "u1", "device_id": "dev-1"},
        "items": [
            {"product_id": product_id, "quantity": quantity, "price": price}
            for product_id, quantity, price in lines
        ],
    }


def push_body(*ops):
    """Wire body for POST /sync/push; payloads JSON-encoded like device clients send them."""
    return [
        {
            "id": op_id,
            "entity_type": entity_type,
            "entity_id": None,
            "operation": "create",
            "payload": json.dumps(payload),
            "device_id": "dev-1",
            "created_at": "2020-01-01T00:00:00Z",
            "retry_count": 99,
        }
        for op_id, entity_type, payload in ops
    ]
