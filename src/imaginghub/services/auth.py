"""Application access tokens (JWT) bound to device sessions."""

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from imaginghub.config import settings
from imaginghub.models import UserSession
from imaginghub.services.clock import Clock, system_clock
from imaginghub.services.device_sessions import DeviceSessionService


class AuthError(Exception):
    """Authentication error."""

    pass


@dataclass
class AuthenticatedUser:
    """The caller of a request, resolved from its access token."""

    email: str
    session: UserSession
    token: str

    @property
    def net_id(self) -> str:
        return self.email.split("@")[0]


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store tokens at rest."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_token(email: str, session_id: str, expires: datetime) -> str:
    """Create a JWT for a device session."""
    payload = {
        "sub": email,
        "sid": session_id,
        "exp": expires,
        "iat": datetime.now(UTC),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError as e:
        raise AuthError(f"Invalid token: {e}") from e


async def verify_token(
    session: AsyncSession,
    token: str,
    clock: Clock = system_clock,
) -> AuthenticatedUser:
    """Verify a JWT and the device session it belongs to."""
    payload = decode_token(token)

    email = payload.get("sub")
    session_id = payload.get("sid")
    if not email or not session_id:
        raise AuthError("Invalid token: missing claims")

    service = DeviceSessionService(session, clock=clock)
    device_session = await service.get(session_id)
    if device_session is None or device_session.token_hash != hash_token(token):
        raise AuthError("Session not found")
    if not device_session.is_valid(service.clock.now()):
        raise AuthError("Session revoked or expired")

    await service.touch(device_session)
    return AuthenticatedUser(email=email, session=device_session, token=token)


async def issue_session(
    session: AsyncSession,
    email: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
    remember_me: bool = False,
    clock: Clock = system_clock,
) -> tuple[str, UserSession]:
    """Record a new device session for ``email`` and return its access token."""
    days = (
        settings.session_remember_me_expiration_days
        if remember_me
        else settings.session_expiration_days
    )
    service = DeviceSessionService(session, clock=clock)
    record = service.build(
        email=email,
        expires_at=clock.now() + timedelta(days=days),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    token = create_token(email, record.id, record.expires_at)
    record.token_hash = hash_token(token)
    await service.add(record)
    return token, record
