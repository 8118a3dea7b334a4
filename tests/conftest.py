"""Shared test fixtures for the order reconciliation test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite)
- db_session: clean database per test (tables created/dropped)
- make_order: factory that inserts an Order row and returns its id

Snapshot builders and fakes live in tests/fakes.py.
"""

import pytest

from bookstore import create_app
from bookstore.extensions import db as _db
from bookstore.models.order import Order


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def make_order(db_session):
    """Insert an Order and return its id.

    Defaults describe a fresh PREPARING order with a session and a ticket.
    """
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        values = {
            "status": "PREPARING",
            "session_id": f"cs_test_{n}",
            "ticket_id": f"ticket_{n}",
        }
        values.update(fields)
        order = Order(**values)
        db_session.add(order)
        db_session.commit()
        return order.id

    return _make
