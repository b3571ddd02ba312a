"""
Health check endpoint tests.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from taskmarket.main import app, create_app


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_ready_before_startup(client: AsyncClient):
    """Without a connected store the service reports it is still starting."""
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "starting"}


async def test_ready_with_store(store):
    app_with_store = create_app(store=store)
    async with AsyncClient(transport=ASGITransport(app=app_with_store), base_url="http://test") as ac:
        response = await ac.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "subscriptions": 0}


async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/chats" in data["endpoints"]
