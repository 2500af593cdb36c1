"""
Shared pytest fixtures: a fresh SQLite file per test, a Repository bound to
it, and helpers for seeding users, projects and bids.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from sitebid.auth_context import CallerContext, hash_password
from sitebid.db import connect_sqlite, init_schema
from sitebid.models import UserRole
from sitebid.repository import Repository
from sitebid.service import MarketplaceService

TEST_PASSWORD = "correct-horse-battery"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class TickingClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "sitebid_test.db")
    conn = connect_sqlite(path)
    init_schema(conn)
    conn.close()
    return path


@pytest.fixture
def conn(db_path):
    conn = connect_sqlite(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(conn):
    return Repository(conn)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def service(repo, clock):
    return MarketplaceService(repo, clock=clock)


def add_user(repo, role, is_active=True, email=None, **extra):
    """Insert a user directly and return its CallerContext."""
    user_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    with repo.transaction():
        repo.insert_user({
            "id": user_id,
            "email": email or f"{role}-{user_id[:8]}@example.com",
            "password_hash": TEST_PASSWORD_HASH,
            "first_name": "Test",
            "last_name": role.capitalize(),
            "role": role,
            "is_active": is_active,
            "specializations": extra.pop("specializations", []),
            "created_at": now,
            "updated_at": now,
            **extra,
        })
    return CallerContext(user_id=user_id, role=UserRole(role))


def project_fields(**overrides):
    fields = {
        "title": "Kitchen remodel",
        "description": "Replace cabinets, counters and flooring in a 12x14 kitchen.",
        "location": "Portland, OR",
        "category": "renovation",
        "budget": "25000.00",
        "urgency": "medium",
        "status": "open",
    }
    fields.update(overrides)
    return fields


def bid_fields(**overrides):
    fields = {
        "price": "18500.00",
        "estimated_duration": 21,
        "description": "Full remodel with mid-range cabinets and quartz counters.",
        "warranty": "2 years labor",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def homeowner(repo):
    return add_user(repo, "homeowner")


@pytest.fixture
def contractor(repo):
    return add_user(repo, "contractor")


@pytest.fixture
def manager(repo):
    return add_user(repo, "project_manager")


@pytest.fixture
def open_project(service, homeowner):
    return service.create_project(homeowner, project_fields())
