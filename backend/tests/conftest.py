"""
Pytest fixtures for compstock backend tests.

Provides test database setup, one user per role, a component factory and the test client.
"""

import pytest
from compstock import create_app
from compstock.extensions import db
from compstock.models import Component, User
from compstock.models.enums import Role


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COMPONENT_LOCK_TIMEOUT_SECONDS': 1,
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


def _make_user(db_session, username: str, role: str, permissions=None) -> User:
    user = User(
        username=username,
        name=username.title(),
        email=f"{username}@lab.local",
        role=role,
        permissions=permissions or [],
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", Role.ADMIN.value)


@pytest.fixture(scope='function')
def lab_user(db_session):
    return _make_user(db_session, "labuser", Role.USER.value)


@pytest.fixture(scope='function')
def researcher(db_session):
    return _make_user(db_session, "researcher", Role.RESEARCHER.value)


@pytest.fixture(scope='function')
def engineer(db_session):
    return _make_user(db_session, "engineer", Role.ENGINEER.value)


@pytest.fixture(scope='function')
def make_component(db_session, admin_user):
    """Factory: make_component(part_number="R-100", quantity=10, critical_low_threshold=5, ...)"""
    counter = {"n": 0}

    def _make(**overrides) -> Component:
        counter["n"] += 1
        data = {
            "name": f"Component {counter['n']}",
            "part_number": f"PN-{counter['n']:04d}",
            "manufacturer": "Acme Semi",
            "category": "Passive Components",
            "quantity": 100,
            "unit_price": "0.25",
            "critical_low_threshold": 10,
            "location": "Shelf A1",
        }
        data.update(overrides)
        from compstock.services.component_service import create_component
        return create_component(data, admin_user)

    return _make


@pytest.fixture(scope='function')
def auth_headers():
    """auth_headers(user) -> headers identifying user to require_auth."""
    def _headers(user) -> dict:
        return {"X-User-Id": str(user.id)}
    return _headers
