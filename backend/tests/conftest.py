"""
Pytest fixtures for the engine, the HTTP client and test events.

Tests run against the in-memory store with Redis disabled; the SQL store
has its own fixtures in test_sql_store.py.
"""

import os

# Must be set before rsvp_engine reads its settings
os.environ["STORE_BACKEND"] = "memory"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["TXN_RETRY_MAX_BACKOFF_MS"] = "5"

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from rsvp_engine.main import app
from rsvp_engine.api.dependencies import get_rsvp_service
from rsvp_engine.infrastructure import InMemoryAttendeeStore, StaticMembershipDirectory
from rsvp_engine.services.records import EventCapacityConfig
from rsvp_engine.services.rsvp_service import RsvpService


@pytest.fixture
def store() -> InMemoryAttendeeStore:
    return InMemoryAttendeeStore()


@pytest.fixture
def memberships() -> StaticMembershipDirectory:
    return StaticMembershipDirectory()


@pytest.fixture
def service(store: InMemoryAttendeeStore, memberships: StaticMembershipDirectory) -> RsvpService:
    return RsvpService(store, memberships, max_dependents=4, max_attempts=2, max_backoff_ms=5)


@pytest_asyncio.fixture(scope="function")
async def client(service: RsvpService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test service instance."""
    app.dependency_overrides[get_rsvp_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def small_event(store: InMemoryAttendeeStore) -> EventCapacityConfig:
    """Two seats with a waitlist."""
    return await store.register_event(
        EventCapacityConfig(event_id="evt-small", capacity=2, waitlist_enabled=True)
    )


@pytest_asyncio.fixture
async def no_waitlist_event(store: InMemoryAttendeeStore) -> EventCapacityConfig:
    """Two seats, no waitlist."""
    return await store.register_event(
        EventCapacityConfig(event_id="evt-strict", capacity=2, waitlist_enabled=False)
    )


@pytest_asyncio.fixture
async def single_seat_event(store: InMemoryAttendeeStore) -> EventCapacityConfig:
    """One seat with a waitlist."""
    return await store.register_event(
        EventCapacityConfig(event_id="evt-single", capacity=1, waitlist_enabled=True)
    )
