"""
Shared pytest fixtures for the COR audit readiness test suite.

Provides:
    - app: Flask application on in-memory SQLite (session-scoped)
    - _setup_db: table creation/teardown (session-scoped)
    - session: per-test app context with rollback + table recreate (autouse)
    - client: Flask test client
    - as_of: fixed evaluation date
    - make_record: evidence dict factory
"""

from datetime import date

import pytest

from config import TestingConfig
from cor_audit import create_app, db as _db


AS_OF = date(2026, 3, 31)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app(TestingConfig)


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Evidence helpers ─────────────────────────────────────────────────────


@pytest.fixture()
def as_of():
    return AS_OF


@pytest.fixture()
def make_record():
    """Factory for raw evidence dicts; ids are unique per call."""
    counter = {"n": 0}

    def _make(type="document", elements=(1,), days_ago=10, status="valid", code=None,
              expiry_date=None, reference_id=None):
        counter["n"] += 1
        record = {
            "type": type,
            "reference_id": reference_id or f"{type}-{counter['n']}",
            "element_numbers": list(elements),
            "date": date.fromordinal(AS_OF.toordinal() - days_ago).isoformat(),
            "status": status,
        }
        if code:
            record["code"] = code
        if expiry_date:
            record["expiry_date"] = expiry_date.isoformat()
        return record

    return _make
