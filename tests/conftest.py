"""
Shared pytest fixtures for the Phase Planning Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant: Pre-created Tenant entity
    - cron_headers: Authorization header carrying the test CRON_SECRET
"""

import pytest

from phaseplan import create_app
from phaseplan.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def tenant():
    """A committed, active tenant."""
    from phaseplan.models.auth import Tenant
    t = Tenant(name="Holzbau Test", slug="holzbau-test")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def cron_headers(app):
    return {"Authorization": f"Bearer {app.config['CRON_SECRET']}"}
