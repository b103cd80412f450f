"""
Tests for the FastAPI application and health endpoint.
"""

import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_health_endpoint_healthy():
    """Health endpoint should return healthy when DB is connected."""
    with patch("campaignsync.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        from campaignsync.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "healthy"
            assert data["database"] == "connected"
            assert data["service"] == "Campaign Sync"


@pytest.mark.anyio
async def test_health_endpoint_degraded():
    """Health endpoint should return degraded when DB is disconnected."""
    with patch("campaignsync.main.check_db_connection", new_callable=AsyncMock, return_value=False):
        from campaignsync.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "degraded"
            assert data["database"] == "disconnected"


@pytest.mark.anyio
async def test_request_id_echoed_or_generated():
    """Every response carries X-Request-ID, echoing the caller's when given."""
    with patch("campaignsync.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        from campaignsync.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            echoed = await client.get("/api/health", headers={"X-Request-ID": "req-42"})
            generated = await client.get("/api/health")
            assert echoed.headers["X-Request-ID"] == "req-42"
            assert len(generated.headers["X-Request-ID"]) == 32
