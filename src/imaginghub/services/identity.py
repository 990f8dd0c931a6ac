"""Identity provider clients.

The identity provider delivers magic links and verifies its own access
tokens. Provider responses are parsed into the small models below at the edge
and nothing else in the application looks at the raw payloads.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, ValidationError

from imaginghub.config import settings
from imaginghub.services.email import EmailService, email_service
from imaginghub.services.errors import (
    MagicLinkNotSent,
    ProviderVerificationFailed,
    TransportError,
)
from imaginghub.services.resilience import with_retry

logger = logging.getLogger(__name__)

# Query parameter carrying the provider access token on a signed magic link
PROVIDER_TOKEN_PARAM = "access_token"


class ProviderUser(BaseModel):
    """User identity as reported by the provider."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None

    @property
    def net_id(self) -> str | None:
        """Local part of the email address (institutional network ID)."""
        if not self.email:
            return None
        return self.email.split("@")[0]


class ProviderSession(BaseModel):
    """An access token the provider has confirmed, with its user."""

    access_token: str
    user: ProviderUser


class IdentityProvider(ABC):
    """Interface the application uses to talk to an identity provider."""

    @abstractmethod
    async def send_magic_link(
        self,
        email: str,
        redirect_to: str,
        requesting_device: str | None = None,
    ) -> None:
        """Email a sign-in link that lands on ``redirect_to``.

        Raises:
            MagicLinkNotSent: the provider refused or failed to send
            TransportError: the provider could not be reached
        """

    @abstractmethod
    async def verify_token(self, token: str) -> ProviderUser:
        """Resolve a provider access token to its user.

        Raises:
            ProviderVerificationFailed: token rejected or user has no email
            TransportError: the provider could not be reached
        """

    async def get_current_session(self, access_token: str | None) -> ProviderSession | None:
        """Return the session for a stored access token, or None if it isn't valid."""
        if not access_token:
            return None
        try:
            user = await self.verify_token(access_token)
        except ProviderVerificationFailed:
            return None
        return ProviderSession(access_token=access_token, user=user)

    async def close(self) -> None:
        """Release network resources."""


class SupabaseIdentityProvider(IdentityProvider):
    """Identity provider backed by a GoTrue-compatible auth API (e.g. Supabase)."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
        retry_wait: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {bearer or self.service_key}",
            "Content-Type": "application/json",
        }

    async def send_magic_link(
        self,
        email: str,
        redirect_to: str,
        requesting_device: str | None = None,
    ) -> None:
        async def _send() -> httpx.Response:
            return await self.client.post(
                "/auth/v1/otp",
                params={"redirect_to": redirect_to},
                headers=self._headers(),
                json={"email": email, "create_user": True},
            )

        try:
            response = await with_retry(
                _send,
                max_attempts=self.max_attempts,
                min_wait=self.retry_wait,
                max_wait=self.retry_wait * 5,
            )
        except httpx.TransportError as e:
            logger.error(f"Identity provider unreachable sending magic link to {email}: {e!r}")
            raise TransportError(str(e)) from e

        if response.is_error:
            logger.error(
                f"Identity provider refused magic link for {email}: "
                f"{response.status_code} - {response.text}"
            )
            raise MagicLinkNotSent(f"Provider returned {response.status_code}")

        logger.info(f"Magic link requested from identity provider for {email}")

    async def verify_token(self, token: str) -> ProviderUser:
        try:
            response = await self.client.get("/auth/v1/user", headers=self._headers(token))
        except httpx.TransportError as e:
            raise TransportError(str(e)) from e

        if response.is_error:
            logger.debug(f"Provider rejected token: {response.status_code}")
            raise ProviderVerificationFailed(f"Provider returned {response.status_code}")

        try:
            user = ProviderUser.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderVerificationFailed("Malformed provider response") from e

        if not user.email:
            raise ProviderVerificationFailed("No email associated with user")
        return user

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LocalIdentityProvider(IdentityProvider):
    """Self-hosted provider: sends links through the email service and signs its own tokens."""

    token_type = "provider"

    def __init__(
        self,
        emails: EmailService | None = None,
        secret: str | None = None,
        algorithm: str | None = None,
    ):
        self.emails = emails or email_service
        self.secret = secret or settings.session_secret
        self.algorithm = algorithm or settings.jwt_algorithm

    async def send_magic_link(
        self,
        email: str,
        redirect_to: str,
        requesting_device: str | None = None,
    ) -> None:
        sent = await self.emails.send_magic_link(
            to=email,
            magic_link=self.sign_link(redirect_to, email),
            requesting_device=requesting_device,
        )
        if not sent:
            raise MagicLinkNotSent(f"Email backend failed to deliver to {email}")

    def sign_link(self, redirect_to: str, email: str) -> str:
        """Attach a provider token for ``email`` to ``redirect_to``.

        Opening the link proves control of the mailbox, so the token lives only
        as long as a pending session does.
        """
        token = self.issue_token(
            email, expires_in=timedelta(minutes=settings.pending_session_ttl_minutes)
        )
        return str(httpx.URL(redirect_to).copy_add_param(PROVIDER_TOKEN_PARAM, token))

    def issue_token(self, email: str, expires_in: timedelta = timedelta(hours=1)) -> str:
        """Issue a provider access token for ``email``."""
        now = datetime.now(UTC)
        payload = {
            "sub": email,
            "email": email,
            "typ": self.token_type,
            "iat": now,
            "exp": now + expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    async def verify_token(self, token: str) -> ProviderUser:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise ProviderVerificationFailed(f"Invalid token: {e}") from e

        if payload.get("typ") != self.token_type:
            raise ProviderVerificationFailed("Invalid token: wrong type")

        try:
            user = ProviderUser(id=payload["sub"], email=payload.get("email"))
        except (KeyError, ValidationError) as e:
            raise ProviderVerificationFailed("Invalid token: missing subject") from e

        if not user.email:
            raise ProviderVerificationFailed("No email associated with user")
        return user


def create_identity_provider() -> IdentityProvider:
    """Build the configured identity provider."""
    if settings.identity_provider == "local":
        return LocalIdentityProvider()
    elif settings.identity_provider == "supabase":
        if not settings.identity_provider_url or not settings.identity_provider_service_key:
            raise ValueError("Missing identity provider URL or service key")
        return SupabaseIdentityProvider(
            base_url=settings.identity_provider_url,
            service_key=settings.identity_provider_service_key,
            timeout=settings.identity_provider_timeout,
        )
    else:
        raise ValueError(f"Unknown identity provider: {settings.identity_provider}")


_identity_provider: IdentityProvider | None = None


def get_identity_provider() -> IdentityProvider:
    """Get the shared identity provider, creating it on first use."""
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = create_identity_provider()
    return _identity_provider


async def close_identity_provider() -> None:
    """Close the shared identity provider (application shutdown)."""
    global _identity_provider
    if _identity_provider is not None:
        await _identity_provider.close()
        _identity_provider = None
