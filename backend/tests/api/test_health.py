"""Tests for health check endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient


async def test_health(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "X-Request-ID" in response.headers


async def test_database_health(async_client: AsyncClient) -> None:
    with patch(
        "app.main.db_manager.check_connection", new=AsyncMock(return_value=False)
    ):
        response = await async_client.get("/health/db")

    assert response.json() == {"status": "error", "database": False}


async def test_scheduler_health_when_disabled(async_client: AsyncClient) -> None:
    response = await async_client.get("/health/scheduler")

    assert response.json()["status"] == "not_initialized"


async def test_integrations_health(
    async_client: AsyncClient, mock_container: SimpleNamespace
) -> None:
    mock_container.integration_status.return_value = {
        "openai": {"available": True, "circuit_state": "closed"},
        "email": {"available": False, "circuit_state": "closed"},
    }

    response = await async_client.get("/health/integrations")

    assert response.json() == {
        "status": "ok",
        "openai": {"available": True, "circuit_state": "closed"},
        "email": {"available": False, "circuit_state": "closed"},
    }


async def test_integrations_health_before_startup(app) -> None:
    from httpx import ASGITransport

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health/integrations")

    assert response.json() == {"status": "not_initialized"}
