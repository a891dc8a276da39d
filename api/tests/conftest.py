"""Shared test fixtures."""

import pytest
from fakes import FakeDatabase, FrozenClock, build_engine

from app.core.database import engine


@pytest.fixture(autouse=True)
async def _dispose_engine_pool():
    """Dispose stale engine pool connections before each test.

    The global engine is created at import time. When pytest-asyncio creates a new
    event loop for tests, any existing pooled connections are bound to the old loop
    and will fail with 'Future attached to a different loop'.
    """
    await engine.dispose()
    yield


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def facility_id(db):
    return db.add_facility(owner_id=900)


@pytest.fixture
def court(db, facility_id):
    """A court open Mondays 09:00-12:00 at 1000.00/hour."""
    court = db.add_court(facility_id, price="1000.00")
    db.add_rule(court.id, day_of_week=1, start=540, end=720)
    return court


@pytest.fixture
def booking_engine(db, clock):
    return build_engine(db, clock)
