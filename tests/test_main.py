from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from waitlist.database.connection import DatabaseConnection
from waitlist.main import app


def client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_degraded_without_database(monkeypatch):
    monkeypatch.setattr(
        DatabaseConnection, "get_pool", AsyncMock(side_effect=OSError("connection refused"))
    )

    async with client() as ac:
        response = await ac.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["database_healthy"] is False


@pytest.mark.asyncio
async def test_health_with_database(monkeypatch):
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=1)
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire.return_value = acquire
    monkeypatch.setattr(DatabaseConnection, "get_pool", AsyncMock(return_value=pool))

    async with client() as ac:
        response = await ac.get("/health")

    assert response.json()["status"] == "healthy"
    conn.fetchval.assert_awaited_once_with("SELECT 1")
