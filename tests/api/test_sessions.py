"""Device session endpoint tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from imaginghub.models import UserSession
from imaginghub.services.auth import issue_session
from imaginghub.services.clock import FakeClock
from tests.conftest import TEST_EMAIL, AuthenticatedClient

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
)


@pytest.fixture
async def other_device(session: AsyncSession, fake_clock: FakeClock) -> tuple[str, UserSession]:
    return await issue_session(session, TEST_EMAIL, user_agent=IPHONE, clock=fake_clock)


@pytest.mark.asyncio
async def test_list_sessions(
    authenticated_client: AuthenticatedClient,
    device_session: tuple[str, UserSession],
    other_device: tuple[str, UserSession],
):
    response = await authenticated_client.get("/api/auth/sessions")

    assert response.status_code == 200
    sessions = {s["id"]: s for s in response.json()["sessions"]}
    assert set(sessions) == {device_session[1].id, other_device[1].id}

    current = sessions[device_session[1].id]
    assert current["is_current"] is True
    assert current["browser_name"] == "Firefox"

    phone = sessions[other_device[1].id]
    assert phone["is_current"] is False
    assert phone["device_name"] == "iPhone"
    assert "token_hash" not in phone


@pytest.mark.asyncio
async def test_list_sessions_requires_auth(client: AsyncClient):
    response = await client.get("/api/auth/sessions")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_revoke_session(
    client: AsyncClient,
    authenticated_client: AuthenticatedClient,
    other_device: tuple[str, UserSession],
):
    phone_token, phone = other_device

    response = await authenticated_client.delete(f"/api/auth/sessions/{phone.id}")
    assert response.status_code == 200

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {phone_token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_revoke_unknown_session(authenticated_client: AuthenticatedClient):
    response = await authenticated_client.delete("/api/auth/sessions/does-not-exist")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cannot_revoke_another_users_session(
    session: AsyncSession,
    fake_clock: FakeClock,
    authenticated_client: AuthenticatedClient,
):
    _, stranger = await issue_session(session, "someone@example.org", clock=fake_clock)

    response = await authenticated_client.delete(f"/api/auth/sessions/{stranger.id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_revoke_others(
    client: AsyncClient,
    authenticated_client: AuthenticatedClient,
    other_device: tuple[str, UserSession],
):
    response = await authenticated_client.post("/api/auth/sessions/revoke-others")

    assert response.status_code == 200
    assert response.json() == {"revoked": 1}

    # The calling device stays signed in
    assert (await authenticated_client.get("/api/auth/me")).status_code == 200
    phone_token, _ = other_device
    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {phone_token}"})
    assert response.status_code == 401
