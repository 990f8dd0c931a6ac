"""Health endpoint tests."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient

from imaginghub import __version__
from imaginghub.models import PendingAuthSession
from imaginghub.services.clock import FakeClock


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test basic health check endpoint."""
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


@pytest.mark.asyncio
async def test_health_check_db(client: AsyncClient):
    """Test health check with database connectivity."""
    response = await client.get("/api/health/db")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["pending_sessions"] == 0


@pytest.mark.asyncio
async def test_health_check_db_counts_live_sessions(
    client: AsyncClient, pending_session: PendingAuthSession, fake_clock: FakeClock
):
    assert (await client.get("/api/health/db")).json()["pending_sessions"] == 1

    fake_clock.advance(minutes=15)
    assert (await client.get("/api/health/db")).json()["pending_sessions"] == 0


@pytest.mark.asyncio
async def test_readiness(client: AsyncClient):
    response = await client.get("/api/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_without_delivery_settings(client: AsyncClient):
    with patch("imaginghub.api.health.settings") as mock_settings:
        mock_settings.identity_provider = "supabase"
        mock_settings.identity_provider_url = ""
        mock_settings.identity_provider_service_key = ""

        response = await client.get("/api/health/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "degraded"
    assert "identity_provider_url" in data["errors"]["delivery"]
