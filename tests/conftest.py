"""Pytest configuration and fixtures."""

import os
import secrets
from unittest.mock import AsyncMock, MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["JWT_SECRET_KEY"] = _TEST_JWT_SECRET
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ.pop("FCM_SERVER_KEY", None)

from fastapi.testclient import TestClient  # noqa: E402

from missionhub.chat import relay  # noqa: E402
from missionhub.chat.relay import RoomRegistry  # noqa: E402
from missionhub.config import get_settings  # noqa: E402
from missionhub.database import get_db  # noqa: E402
from missionhub.main import app  # noqa: E402
from missionhub.models import Role  # noqa: E402
from missionhub.notifications import get_notifier  # noqa: E402
from missionhub.payments import get_gateway  # noqa: E402

from fake_supabase import FakeSupabase  # noqa: E402
from factories import headers_for, make_mission, make_user  # noqa: E402


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def fake_db():
    """Fresh in-memory store per test."""
    return FakeSupabase()


@pytest.fixture
def notifier():
    """Push notifier double that records best-effort notifications."""
    mock = MagicMock()
    mock.enabled = True
    mock.notify = AsyncMock(return_value=True)
    mock.send = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def gateway():
    """Stripe gateway double with canned processor responses."""
    mock = MagicMock()
    mock.currency = "eur"
    mock.create_customer = AsyncMock(return_value="cus_test_123")
    mock.create_payment_intent = AsyncMock(
        return_value={"id": "pi_test_1", "client_secret": "pi_test_1_secret", "status": "requires_payment_method"}
    )
    mock.retrieve_payment_intent = AsyncMock(
        return_value={"id": "pi_test_1", "client_secret": "pi_test_1_secret", "status": "requires_payment_method"}
    )
    mock.cancel_payment_intent = AsyncMock(return_value={"id": "pi_test_1", "status": "canceled"})
    mock.refund = AsyncMock(return_value={"id": "re_test_1", "status": "succeeded"})
    return mock


@pytest.fixture(autouse=True)
def fresh_relay():
    """Start each test with an empty room registry."""
    relay.registry = RoomRegistry()
    relay._locks.clear()
    relay._lock_users.clear()
    yield relay
    relay.registry = RoomRegistry()
    relay._locks.clear()
    relay._lock_users.clear()


@pytest.fixture
def client(fake_db, notifier, gateway):
    """Test client with the store, notifier and gateway swapped for doubles."""
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def users(fake_db):
    """One account per role, plus a second provider."""
    return {
        "client": make_user(fake_db, Role.client, "client@example.com", device_token="dev-client"),
        "provider": make_user(
            fake_db, Role.provider, "provider@example.com",
            device_token="dev-provider", latitude=48.8566, longitude=2.3522,
        ),
        "other_provider": make_user(
            fake_db, Role.provider, "other@example.com", latitude=45.764, longitude=4.8357,
        ),
        "admin": make_user(fake_db, Role.admin, "admin@example.com"),
    }


@pytest.fixture
def auth_headers(users):
    """Auth headers keyed by role name."""
    return {name: headers_for(user) for name, user in users.items()}


@pytest.fixture
def mission(fake_db, users):
    """A PENDING mission posted by the client."""
    return make_mission(fake_db, users["client"])
