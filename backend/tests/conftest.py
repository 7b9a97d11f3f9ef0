"""
Pytest fixtures for DinePOS backend tests.

Provides test database setup, two restaurants for isolation tests, admins
of both roles, and helpers for bearer and cookie authentication.
"""

from datetime import timedelta

import pytest
from dinepos import create_app
from dinepos.config import TestConfig
from dinepos.extensions import db
from dinepos.services import admin_service, tenant_service
from dinepos.services.inventory_manager import get_inventory_registry
from dinepos.services.identity_service import POS_SESSION_COOKIE, POS_RESTAURANT_COOKIE
from dinepos.time_utils import utcnow

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
    """Test client without a cookie jar; tests pass cookies explicitly."""
    return app.test_client(use_cookies=False)


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        get_inventory_registry().dispose_all()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        get_inventory_registry().dispose_all()


@pytest.fixture(scope='function')
def make_restaurant(db_session):
    """Factory: provision a restaurant that can sign in now unless told otherwise."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        now = utcnow()
        payload = {
            "name": f"Restaurant {n}",
            "owner_name": f"Owner {n}",
            "email": f"owner{n}@example.com",
            "password": PASSWORD,
            "activation_date": (now - timedelta(days=1)).isoformat(),
            "expiry_date": (now + timedelta(days=30)).isoformat(),
            "address": f"{n} Main Street",
            "phone_number": "0123456789",
        }
        payload.update(overrides)
        return tenant_service.create_restaurant(payload)

    return _make


@pytest.fixture(scope='function')
def restaurant_a(make_restaurant):
    """Restaurant A (first tenant)."""
    return make_restaurant(name="Restaurant A - Curry House", email="a@curry.example")


@pytest.fixture(scope='function')
def restaurant_b(make_restaurant):
    """Restaurant B (second tenant)."""
    return make_restaurant(name="Restaurant B - Noodle Bar", email="b@noodle.example")


@pytest.fixture(scope='function')
def superadmin(db_session):
    return admin_service.provision_admin({
        "name": "Super Admin",
        "email": "super@dinepos.example",
        "password": PASSWORD,
        "role": "superadmin",
    })


@pytest.fixture(scope='function')
def admin(db_session):
    return admin_service.provision_admin({
        "name": "Plain Admin",
        "email": "admin@dinepos.example",
        "password": PASSWORD,
        "role": "admin",
    })


@pytest.fixture(scope='function')
def other_admin(db_session):
    return admin_service.provision_admin({
        "name": "Other Admin",
        "email": "other@dinepos.example",
        "password": PASSWORD,
        "role": "admin",
    })


def bearer(credential: str) -> dict:
    return {"Authorization": f"Bearer {credential}"}


def pos_cookies(token: str, restaurant_id) -> dict:
    return {"Cookie": f"{POS_SESSION_COOKIE}={token}; {POS_RESTAURANT_COOKIE}={restaurant_id}"}


def admin_login(client, email: str, password: str = PASSWORD) -> str:
    resp = client.post("/api/admin/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["credential"]


def pos_login(client, email: str, password: str = PASSWORD) -> dict:
    resp = client.post("/api/pos/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


@pytest.fixture(scope='function')
def pos_headers_a(client, restaurant_a):
    """Bearer headers for Restaurant A."""
    return bearer(pos_login(client, restaurant_a.email)["credential"])


@pytest.fixture(scope='function')
def pos_headers_b(client, restaurant_b):
    """Bearer headers for Restaurant B."""
    return bearer(pos_login(client, restaurant_b.email)["credential"])
