"""
Pytest fixtures for coach ledger backend tests.

Provides test database setup, coach/member fixtures, and test client.
"""

import pytest

from coachledger import create_app
from coachledger.extensions import db
from coachledger.permissions import ROLE_ADMIN, ROLE_COACH
from coachledger.services import coach_service, package_service
from coachledger.services.commission_service import PercentOfPrice


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0,
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
def coach(db_session):
    """Create the coach most tests work against."""
    return coach_service.create_coach("Deniz", "Kadikoy")


@pytest.fixture(scope='function')
def other_coach(db_session):
    """Create a second coach for isolation checks."""
    return coach_service.create_coach("Selin", "Besiktas")


@pytest.fixture
def make_member(coach):
    """
    Factory: register a member with an APPROVED first package.

    Defaults to 1000 cents, 10 sessions, 30 days, 40% commission.
    """
    def _make(name="Mert", *, coach_id=None, actor_role=ROLE_ADMIN, **terms):
        terms.setdefault("price_cents", 1000)
        terms.setdefault("session_count", 10)
        terms.setdefault("duration_days", 30)
        terms.setdefault("rule", PercentOfPrice(4000))
        member, package = package_service.register_member(
            coach_id or coach.id,
            name=name,
            actor_role=actor_role,
            actor_id="admin" if actor_role == ROLE_ADMIN else str(coach_id or coach.id),
            **terms,
        )
        return member, package

    return _make


@pytest.fixture
def admin_headers():
    return {"X-Actor-Role": ROLE_ADMIN, "X-Actor-Id": "admin"}


@pytest.fixture
def coach_headers(coach):
    return {"X-Actor-Role": ROLE_COACH, "X-Actor-Id": str(coach.id)}
