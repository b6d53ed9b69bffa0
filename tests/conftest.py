"""
Shared pytest fixtures for the Construction Progress Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context, rollback + table recreate (autouse)
    - client: Flask test client (function-scoped)
    - activity: Pre-created Activity entity
"""

from datetime import date

import pytest

from app import create_app
from app.models import db as _db
from app.models.activity import Activity


def _drop_all():
    """Drop all tables with SQLite FK enforcement paused for the DROP."""
    is_sqlite = _db.engine.dialect.name == "sqlite"
    if is_sqlite:
        with _db.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
    _db.drop_all()
    if is_sqlite:
        with _db.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def activity():
    """A 100 m³ concrete activity planned over January 2024."""
    a = Activity(
        name="Concrete slab L2",
        discipline="structure",
        unit="m3",
        total_qty=100.0,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    )
    _db.session.add(a)
    _db.session.commit()
    return a
