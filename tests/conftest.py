"""
Shared fixtures: environment, in-memory database and session store, an
authenticated admin client.
"""

import json
import os
import time
from datetime import date, timedelta

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["ADMIN_EMAILS"] = "ops@practice.test"
os.environ.setdefault("PRACTICE_TIMEZONE", "America/Denver")
os.environ.setdefault("ENVIRONMENT", "test")

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.database import get_db  # noqa: E402
from app.fsm.redis_client import RedisClient  # noqa: E402
from app.main import app  # noqa: E402
from app.api.booking_sessions_api import get_session_store  # noqa: E402
from app.middleware.rate_limiter import booking_limiter  # noqa: E402
from tests.fake_supabase import FakeSupabase  # noqa: E402

PROVIDER_DIRECT = "11111111-1111-4111-8111-111111111111"
PROVIDER_RESIDENT = "22222222-2222-4222-8222-222222222222"
PROVIDER_ATTENDING = "33333333-3333-4333-8333-333333333333"
PROVIDER_IDLE = "44444444-4444-4444-8444-444444444444"

PAYER_ACTIVE = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
PAYER_FUTURE = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
PAYER_DENIED = "cccccccc-cccc-4ccc-8ccc-cccccccccccc"
PAYER_EMPTY = "dddddddd-dddd-4ddd-8ddd-dddddddddddd"


class InMemorySessionStore(RedisClient):
    """RedisClient with the CAS contract kept in a dict."""

    def __init__(self):
        super().__init__(url="redis://unused")
        self.values = {}
        self._connected = True

    async def cas_set(self, key, expected_version, new_value, ttl):
        current = self.values.get(key)
        if current is None:
            if expected_version != 0:
                return False
        elif json.loads(current)["version"] != expected_version:
            return False
        self.values[key] = new_value
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0


def _provider(provider_id, first, last, **overrides):
    row = {
        "id": provider_id,
        "first_name": first,
        "last_name": last,
        "title": "LCSW",
        "role": "therapist",
        "email": f"{first.lower()}@practice.test",
        "languages_spoken": ["English"],
        "is_active": True,
        "is_bookable": True,
        "accepts_new_patients": True,
    }
    row.update(overrides)
    return row


def seed_tables():
    """
    Direct: PROVIDER_DIRECT and PROVIDER_ATTENDING contract with PAYER_ACTIVE.
    Supervised: PROVIDER_RESIDENT is supervised by PROVIDER_ATTENDING for PAYER_ACTIVE.
    PROVIDER_IDLE has no contract.
    """
    today = date.today()
    long_ago = (today - timedelta(days=365)).isoformat()
    return {
        "providers": [
            _provider(PROVIDER_DIRECT, "Dana", "Direct"),
            _provider(PROVIDER_RESIDENT, "Riley", "Resident", title="Resident",
                      languages_spoken='["English", "Spanish"]'),
            _provider(PROVIDER_ATTENDING, "Alex", "Attending", title="MD"),
            _provider(PROVIDER_IDLE, "Ira", "Idle"),
        ],
        "payers": [
            {"id": PAYER_ACTIVE, "name": "Aetna Behavioral", "payer_type": "commercial",
             "state": "UT", "status_code": "approved", "effective_date": long_ago},
            {"id": PAYER_FUTURE, "name": "Aetna Medicaid", "payer_type": "medicaid",
             "state": "UT", "status_code": "approved",
             "effective_date": (today + timedelta(days=10)).isoformat()},
            {"id": PAYER_DENIED, "name": "Blocked Health", "payer_type": "commercial",
             "state": "UT", "status_code": "denied", "effective_date": None},
            {"id": PAYER_EMPTY, "name": "Empty Plan", "payer_type": "commercial",
             "state": "UT", "status_code": "active", "effective_date": long_ago},
        ],
        "provider_payer_networks": [
            {"id": "contract-direct", "provider_id": PROVIDER_DIRECT, "payer_id": PAYER_ACTIVE,
             "status": "in_network", "effective_date": long_ago, "expiration_date": None,
             "bookable_from_date": None, "notes": None,
             "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00"},
            {"id": "contract-attending", "provider_id": PROVIDER_ATTENDING, "payer_id": PAYER_ACTIVE,
             "status": "in_network", "effective_date": long_ago,
             "expiration_date": (today + timedelta(days=45)).isoformat(),
             "bookable_from_date": None, "notes": None,
             "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00"},
        ],
        "supervision_relationships": [
            {"id": "supervision-1", "supervisor_provider_id": PROVIDER_ATTENDING,
             "supervisee_provider_id": PROVIDER_RESIDENT, "payer_id": PAYER_ACTIVE,
             "supervision_level": "co_visit_required", "designation": "primary",
             "start_date": long_ago, "end_date": None, "modality_constraints": [],
             "concurrency_cap": None, "is_active": True, "notes": None,
             "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00"},
        ],
        "provider_availability": [
            # Every weekday 09:00-12:00 local for the direct and resident providers
            *[
                {"provider_id": pid, "day_of_week": dow, "start_time": "09:00:00",
                 "end_time": "12:00:00", "effective_date": None, "expiration_date": None}
                for pid in (PROVIDER_DIRECT, PROVIDER_RESIDENT)
                for dow in range(7)
            ],
        ],
        "availability_exceptions": [],
        "appointments": [],
        "patients": [],
        "organizations": [],
        "partners": [],
        "partner_users": [],
        "roster_rebuild_log": [],
        "bookable_provider_payer_roster": [],
        "scheduler_audit_logs": [],
        "booking_leads": [],
    }


@pytest.fixture
def db():
    return FakeSupabase(seed_tables())


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    booking_limiter.reset()
    yield
    booking_limiter.reset()


@pytest.fixture
def client(db, session_store):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_session_store] = lambda: session_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(**claims):
    payload = {"sub": "user-1", "exp": int(time.time()) + 3600}
    payload.update(claims)
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(sub='admin-1', role='admin')}"}


@pytest.fixture
def staff_headers():
    return {"Authorization": f"Bearer {make_token(sub='staff-1', role='authenticated', email='staff@practice.test')}"}
