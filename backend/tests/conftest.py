"""
Pytest fixtures for stockroom backend tests.

Provides test database setup, seeded users/products/shelves, and test client.
"""

import os
import tempfile

import pytest
from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import ROLE_ADMIN, ROLE_STAFF
from stockroom.services import catalog_service, location_service
from stockroom.services.auth_service import create_user

TEST_PASSWORD = "Password123"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'BCRYPT_ROUNDS': 4,
    'LEDGER_RETRY_BACKOFF': 0.01,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


@pytest.fixture
def file_app():
    """
    Application backed by a temporary SQLite file.

    Threads get their own connections here (an in-memory database is a
    single shared connection), so concurrency tests exercise real locking.
    """
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({**TEST_CONFIG, 'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}"})

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user(
        username="admin",
        email="admin@stockroom.test",
        password=TEST_PASSWORD,
        name="Admin",
        role=ROLE_ADMIN,
    )


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user(
        username="staff",
        email="staff@stockroom.test",
        password=TEST_PASSWORD,
        name="Staff Member",
        role=ROLE_STAFF,
    )


@pytest.fixture(scope='function')
def zones(db_session):
    return location_service.seed_default_zones()


@pytest.fixture(scope='function')
def shelf(zones):
    """R-C01-S01"""
    return location_service.ensure_shelf("R", 1, 1)


@pytest.fixture(scope='function')
def other_shelf(zones):
    """M-C02-S03"""
    return location_service.ensure_shelf("M", 2, 3)


@pytest.fixture(scope='function')
def product(db_session):
    """P001 Paracetamol: cost 1.20, selling 2.16, reorder level 5."""
    return catalog_service.create_product(
        sku="P001",
        name="Paracetamol 500mg",
        cost_price_cents=120,
        selling_price_cents=216,
        reorder_level=5,
    )


@pytest.fixture(scope='function')
def second_product(db_session):
    return catalog_service.create_product(
        sku="P002",
        name="Ibuprofen 200mg",
        cost_price_cents=300,
        selling_price_cents=450,
        reorder_level=10,
    )


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.username))
