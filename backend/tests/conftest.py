"""
Pytest fixtures for lpgtrack backend tests.

Provides an in-memory application, a per-test clean database, a test client,
and a small factory for issuing cylinders.
"""

import pytest
from lpgtrack import create_app
from lpgtrack.extensions import db
from lpgtrack.services import cylinder_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CYLINDER_PAGE_SIZE_MAX': 5,
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
def make_cylinder(db_session):
    """Issue cylinders with sensible defaults."""
    def _make(qr_code="05285AWI1ES04", weight_kg=11, unit_cost="950.00", supplier=None):
        return cylinder_service.issue_cylinder(
            qr_code, weight_kg=weight_kg, unit_cost=unit_cost, supplier=supplier
        )
    return _make
