"""
Pytest configuration and fixtures

IMPORTANT: All tests use transactional rollback isolation.
Nothing created during tests persists to the database.

The suite runs against in-memory SQLite; DATABASE_URL must be set before
the fitpulse package is imported because the engine is built at import.
"""
import fnmatch
import os
from uuid import uuid4

import pytest

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"

from sqlalchemy.orm import Session  # noqa: E402

from fitpulse.core import cache  # noqa: E402
from fitpulse.core.config import settings  # noqa: E402
from fitpulse.core.database import Base, engine  # noqa: E402
from fitpulse.models import User  # noqa: E402
from fitpulse.services.achievement_catalog import seed_achievements  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _create_schema():
    """Create every table once for the whole run."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a database session with transactional rollback.

    Application code may call commit(); it only releases a SAVEPOINT inside
    the outer transaction, which is rolled back after the test.
    """
    connection = engine.connect()
    transaction = connection.begin()

    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    # Rollback everything - nothing persists
    session.close()
    transaction.rollback()
    connection.close()


def _make_user(db_session, name="Test User"):
    user = User(
        email=f"test_{uuid4()}@example.com",
        display_name=name,
        weight_kg=70.0,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_user(db_session):
    """No cleanup needed - transaction rollback handles it."""
    return _make_user(db_session)


@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, name="Other User")


@pytest.fixture
def catalog(db_session):
    """Seed the default achievement catalog; returns definitions by key."""
    from fitpulse.models import Achievement

    seed_achievements(db_session)
    db_session.commit()
    return {a.key: a for a in db_session.query(Achievement).all()}


class FakeRedis:
    """Minimal in-memory Redis mock for unit tests."""

    def __init__(self):
        self._store: dict = {}
        self._ttls: dict = {}

    def get(self, key):
        return self._store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self._store:
            return False
        self._store[key] = value
        if ex:
            self._ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._ttls[key] = ttl

    def delete(self, *keys):
        deleted = 0
        for k in keys:
            if k in self._store:
                deleted += 1
            self._store.pop(k, None)
            self._ttls.pop(k, None)
        return deleted

    def exists(self, key):
        return key in self._store

    def scan_iter(self, match=None):
        for key in list(self._store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ping(self):
        return True


@pytest.fixture
def fake_redis(monkeypatch):
    """Enable caching backed by an in-memory FakeRedis."""
    fake = FakeRedis()
    monkeypatch.setattr(settings, "CACHE_ENABLED", True)
    monkeypatch.setattr(cache, "_redis_client", fake)
    return fake


class StubActivityLog:
    """ActivityLogProvider over fixed per-user data; counts reads."""

    def __init__(self, timestamps=None, calories=0.0):
        self.timestamps = list(timestamps or [])
        self.calories = calories
        self.reads = 0

    def completion_timestamps(self, user_id):
        self.reads += 1
        return list(self.timestamps)

    def total_calories(self, user_id):
        return self.calories


@pytest.fixture
def activity_log():
    return StubActivityLog()
