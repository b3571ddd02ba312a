"""
Shared fixtures: a fresh SQLite-backed document store per test and a small
marketplace (Alice posts a task, Bob applies) built on top of it.
"""

import asyncio

import pytest

from taskmarket.core.auth import StaticAuthContext
from taskmarket.core.store import DocumentStore
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.common import Coordinates, Location
from taskmarket_shared.schemas.tasks import TaskCreate


class Deliveries:
    """Subscription callback that records every delivered value."""

    def __init__(self):
        self.values = []
        self._queue: asyncio.Queue = asyncio.Queue()

    def __call__(self, value):
        self.values.append(value)
        self._queue.put_nowait(value)

    async def next(self, timeout: float = 2.0):
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    async def until(self, predicate, timeout: float = 2.0):
        """Wait for the first delivery matching ``predicate`` (deliveries may coalesce)."""

        async def wait():
            while True:
                value = await self._queue.get()
                if predicate(value):
                    return value

        return await asyncio.wait_for(wait(), timeout=timeout)


@pytest.fixture
async def store(tmp_path):
    s = await DocumentStore.connect(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield s
    await s.close()


@pytest.fixture
def deliveries():
    """Factory for subscription recorders."""
    return Deliveries


@pytest.fixture
def as_user(store):
    """Facade acting as the given user id."""

    def factory(user_id):
        return CollaborationService(store, StaticAuthContext(user_id))

    return factory


@pytest.fixture
async def task(as_user):
    result = await as_user("alice").create_task(
        TaskCreate(
            title="Fix the garden fence",
            description="Two panels blew over",
            category="garden",
            location=Location(
                address="12 Oak Street",
                coordinates=Coordinates(lat=52.37, lng=4.89),
            ),
        ),
        creator_name="Alice",
    )
    assert result.ok, result.error
    return result.value


@pytest.fixture
async def applied(as_user, task):
    """Bob's application to Alice's task."""
    result = await as_user("bob").apply_for_task(task.id, "Hi", applicant_name="Bob")
    assert result.ok, result.error
    return result.value


@pytest.fixture
async def chat_id(applied):
    return applied.chat_id
