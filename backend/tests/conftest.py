"""
Pytest fixtures for VoucherDesk backend tests.

Provides an in-memory database, per-test cleanup, a test client and
authenticated users for each role.
"""

import pytest

from voucherdesk import create_app
from voucherdesk.config import TestConfig
from voucherdesk.extensions import db
from voucherdesk.services import auth_service, session_service
from voucherdesk.services.sequence_service import local_counter


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
        local_counter.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username: str, role: str):
    return auth_service.create_user(
        username=username,
        email=f"{username}@voucherdesk.test",
        password=PASSWORD,
        role=role,
    )


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return _make_user("staff", "staff")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    _, token = session_service.create_session(staff_user.id)
    return auth_headers(token)


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
