"""Client for the initiating device of a cross-device sign-in.

``HandshakeClient`` is a thin httpx wrapper over the auth API. ``AuthState``
holds the signed-in state of one process and drives the whole flow:

    async with HandshakeClient("https://hub.example.edu") as client:
        state = AuthState(client)
        result = await state.sign_in_cross_device("someone@example.edu")
        if result.state is PollerState.CONFIRMED:
            print(state.user.email)
"""

import logging
from collections.abc import Callable

import httpx

from imaginghub.models import SessionStatus
from imaginghub.schemas import (
    HandshakeStartResponse,
    HandshakeStatusResponse,
    TokenResponse,
    UserRead,
    VerifyResponse,
)
from imaginghub.services.clock import Clock, system_clock
from imaginghub.services.errors import (
    HandshakeError,
    ProviderVerificationFailed,
    RateLimited,
    TransportError,
    error_for_code,
)
from imaginghub.services.poller import (
    CancellationToken,
    HandshakePoller,
    PollerState,
    PollResult,
)

logger = logging.getLogger(__name__)


def raise_for_error(response: httpx.Response) -> None:
    """Turn an error response from the auth API into a HandshakeError."""
    if response.is_success:
        return

    code = None
    detail = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, dict):
            code = detail.get("code")
            detail = detail.get("message")

    if response.status_code == 429:
        raise RateLimited(detail)
    if code:
        raise error_for_code(code)(detail)
    if response.status_code == 401:
        raise ProviderVerificationFailed(detail if isinstance(detail, str) else None)
    if response.status_code >= 500:
        raise TransportError(f"Server returned {response.status_code}")
    raise HandshakeError(f"Unexpected response {response.status_code}")


class HandshakeClient:
    """HTTP client for the auth API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def _request(
        self,
        method: str,
        url: str,
        access_token: str | None = None,
        **kwargs,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise TransportError(str(e)) from e
        raise_for_error(response)
        return response

    async def start(
        self,
        email: str,
        device_info: str | None = None,
        device_fingerprint: str | None = None,
    ) -> HandshakeStartResponse:
        """Create a pending session and have the magic link sent."""
        response = await self._request(
            "POST",
            "/api/auth/handshake",
            json={
                "email": email,
                "device_info": device_info,
                "device_fingerprint": device_fingerprint,
            },
        )
        return HandshakeStartResponse.model_validate(response.json())

    async def poll_status(self, session_token: str) -> SessionStatus:
        response = await self._request("GET", f"/api/auth/handshake/{session_token}")
        return HandshakeStatusResponse.model_validate(response.json()).status

    async def complete(self, session_token: str, remember_me: bool = False) -> TokenResponse:
        """Exchange a confirmed pending session for an access token."""
        response = await self._request(
            "POST",
            f"/api/auth/handshake/{session_token}/complete",
            json={"remember_me": remember_me},
        )
        return TokenResponse.model_validate(response.json())

    async def me(self, access_token: str) -> UserRead:
        response = await self._request("GET", "/api/auth/me", access_token=access_token)
        return UserRead.model_validate(response.json())

    async def logout(self, access_token: str) -> None:
        await self._request("POST", "/api/auth/logout", access_token=access_token)

    async def verify(self, provider_token: str) -> VerifyResponse:
        """Check an identity provider token with the server."""
        response = await self._request("POST", "/api/auth/verify", access_token=provider_token)
        return VerifyResponse.model_validate(response.json())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HandshakeClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class AuthState:
    """Signed-in state of one process, passed explicitly to whoever needs it."""

    def __init__(
        self,
        client: HandshakeClient,
        access_token: str | None = None,
        clock: Clock = system_clock,
    ):
        self.client = client
        self.access_token = access_token
        self.clock = clock
        self.user: UserRead | None = None
        self.session_id: str | None = None
        self._poller: HandshakePoller | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    async def initialize(self) -> UserRead | None:
        """Resolve a stored access token to the current user, dropping it if invalid."""
        if not self.access_token:
            return None
        try:
            self.user = await self.client.me(self.access_token)
        except ProviderVerificationFailed:
            logger.info("Stored access token is no longer valid")
            self.clear()
        return self.user

    async def sign_in_cross_device(
        self,
        email: str,
        device_info: str | None = None,
        remember_me: bool = False,
        cancel_token: CancellationToken | None = None,
        on_state_change: Callable[[PollerState], None] | None = None,
    ) -> PollResult:
        """Send a magic link, wait for another device to open it, then sign in here.

        Errors while starting are raised; everything after that is reported in
        the returned result.
        """
        started = await self.client.start(email, device_info=device_info)

        async def _complete(session_token: str) -> TokenResponse:
            token = await self.client.complete(session_token, remember_me=remember_me)
            self.access_token = token.access_token
            self.session_id = token.session_id
            self.user = token.user
            return token

        self._poller = HandshakePoller(
            started.session_token,
            fetch_status=self.client.poll_status,
            on_confirmed=_complete,
            clock=self.clock,
            interval=started.poll_interval_seconds,
            deadline=started.expires_at,
            cancel_token=cancel_token,
            on_state_change=on_state_change,
        )
        try:
            return await self._poller.run()
        finally:
            self._poller = None

    def cancel_sign_in(self) -> None:
        """Stop a sign-in that is waiting for confirmation."""
        if self._poller is not None:
            self._poller.cancel()

    async def sign_out(self) -> None:
        """Revoke this device's session and forget it locally."""
        self.cancel_sign_in()
        if self.access_token:
            try:
                await self.client.logout(self.access_token)
            except HandshakeError as e:
                logger.warning(f"Sign-out request failed: {e}")
        self.clear()

    def clear(self) -> None:
        self.access_token = None
        self.session_id = None
        self.user = None
