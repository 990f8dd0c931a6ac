"""Tests for the initiating device's client, run against the app in-process."""

from unittest.mock import MagicMock

import httpx
import pytest
from httpx import AsyncClient

from imaginghub.client import AuthState, HandshakeClient, raise_for_error
from imaginghub.models import SessionStatus
from imaginghub.services.clock import FakeClock
from imaginghub.services.errors import (
    EmailNotAuthorized,
    HandshakeError,
    ProviderVerificationFailed,
    RateLimited,
    SessionNotAuthenticated,
    TransportError,
)
from imaginghub.services.identity import LocalIdentityProvider
from imaginghub.services.poller import CancellationToken, PollerState
from tests.conftest import TEST_EMAIL, sent_magic_link


@pytest.fixture
def handshake_client(client: AsyncClient) -> HandshakeClient:
    return HandshakeClient("http://test", client=client)


def confirm_on_poll(
    handshake_client: HandshakeClient,
    api: AsyncClient,
    email_service_mock: MagicMock,
    on_poll: int,
) -> list[SessionStatus]:
    """Open the emailed link on another device just before the ``on_poll``-th poll."""
    statuses: list[SessionStatus] = []
    poll_status = handshake_client.poll_status

    async def poll_and_confirm(session_token: str) -> SessionStatus:
        if len(statuses) + 1 == on_poll:
            response = await api.get(sent_magic_link(email_service_mock))
            assert response.json()["status"] == "success"
        status = await poll_status(session_token)
        statuses.append(status)
        return status

    handshake_client.poll_status = poll_and_confirm  # type: ignore[method-assign]
    return statuses


class TestRaiseForError:
    def _response(self, status_code: int, **kwargs) -> httpx.Response:
        return httpx.Response(
            status_code, request=httpx.Request("GET", "http://test/api"), **kwargs
        )

    def test_success(self):
        raise_for_error(self._response(200, json={}))

    def test_error_code(self):
        response = self._response(
            403, json={"detail": {"code": "unauthorized_domain", "message": "No"}}
        )
        with pytest.raises(EmailNotAuthorized):
            raise_for_error(response)

    def test_rate_limited_is_retryable(self):
        with pytest.raises(TransportError) as exc_info:
            raise_for_error(self._response(429, text="slow down"))
        assert isinstance(exc_info.value, RateLimited)

    def test_unauthorized(self):
        with pytest.raises(ProviderVerificationFailed):
            raise_for_error(self._response(401, json={"detail": "Not authenticated"}))

    def test_server_error(self):
        with pytest.raises(TransportError):
            raise_for_error(self._response(503, text="unavailable"))

    def test_unknown_client_error(self):
        with pytest.raises(HandshakeError):
            raise_for_error(self._response(400, text="bad"))


class TestHandshakeClient:
    @pytest.mark.asyncio
    async def test_start_and_poll(self, handshake_client: HandshakeClient):
        started = await handshake_client.start(TEST_EMAIL, device_info="CLI")

        assert started.poll_interval_seconds == 2.5
        assert await handshake_client.poll_status(started.session_token) is SessionStatus.PENDING

    @pytest.mark.asyncio
    async def test_complete_before_confirmation(self, handshake_client: HandshakeClient):
        started = await handshake_client.start(TEST_EMAIL)

        with pytest.raises(SessionNotAuthenticated):
            await handshake_client.complete(started.session_token)

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport_client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://test"
        )
        async with HandshakeClient("http://test", client=transport_client) as client:
            with pytest.raises(TransportError):
                await client.poll_status("token")

    @pytest.mark.asyncio
    async def test_verify(
        self, handshake_client: HandshakeClient, identity_provider: LocalIdentityProvider
    ):
        result = await handshake_client.verify(identity_provider.issue_token(TEST_EMAIL))
        assert result.user.email == TEST_EMAIL


class TestAuthState:
    @pytest.mark.asyncio
    async def test_sign_in_cross_device(
        self,
        client: AsyncClient,
        handshake_client: HandshakeClient,
        email_service_mock: MagicMock,
        fake_clock: FakeClock,
    ):
        statuses = confirm_on_poll(handshake_client, client, email_service_mock, on_poll=3)
        state = AuthState(handshake_client, clock=fake_clock)
        changes: list[PollerState] = []

        result = await state.sign_in_cross_device(TEST_EMAIL, on_state_change=changes.append)

        assert result.state is PollerState.CONFIRMED
        assert statuses == [SessionStatus.PENDING, SessionStatus.PENDING, SessionStatus.AUTHENTICATED]
        assert changes == [PollerState.AWAITING_CONFIRMATION, PollerState.CONFIRMED]
        assert state.is_authenticated
        assert state.user is not None and state.user.email == TEST_EMAIL
        assert state.session_id is not None

        # The stored token resolves to the same user in a fresh process
        restored = AuthState(handshake_client, access_token=state.access_token)
        user = await restored.initialize()
        assert user is not None and user.email == TEST_EMAIL

    @pytest.mark.asyncio
    async def test_nobody_confirms(
        self,
        handshake_client: HandshakeClient,
        fake_clock: FakeClock,
        monkeypatch: pytest.MonkeyPatch,
    ):
        # Poll less often so the run stays inside the poll rate limit
        monkeypatch.setattr("imaginghub.api.auth.settings.poll_interval_seconds", 30.0)
        state = AuthState(handshake_client, clock=fake_clock)

        result = await state.sign_in_cross_device(TEST_EMAIL)

        assert result.state is PollerState.EXPIRED
        assert result.message == "This sign-in link has expired. Please request a new one."
        assert not state.is_authenticated

    @pytest.mark.asyncio
    async def test_cancelled_sign_in(
        self,
        handshake_client: HandshakeClient,
        fake_clock: FakeClock,
    ):
        cancel_token = CancellationToken()
        state = AuthState(handshake_client, clock=fake_clock)

        def cancel_when_waiting(new_state: PollerState) -> None:
            if new_state is PollerState.AWAITING_CONFIRMATION:
                cancel_token.cancel()

        result = await state.sign_in_cross_device(
            TEST_EMAIL, cancel_token=cancel_token, on_state_change=cancel_when_waiting
        )

        assert result.state is PollerState.CANCELLED
        assert result.polls == 0
        assert not state.is_authenticated

    @pytest.mark.asyncio
    async def test_initialize_drops_invalid_token(self, handshake_client: HandshakeClient):
        state = AuthState(handshake_client, access_token="stale-token")

        assert await state.initialize() is None
        assert state.access_token is None

    @pytest.mark.asyncio
    async def test_sign_out(
        self,
        handshake_client: HandshakeClient,
        device_session,
    ):
        token, _ = device_session
        state = AuthState(handshake_client, access_token=token)
        assert await state.initialize() is not None

        await state.sign_out()

        assert state.access_token is None
        assert not state.is_authenticated
        with pytest.raises(ProviderVerificationFailed):
            await handshake_client.me(token)
