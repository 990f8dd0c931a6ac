"""Cross-device sign-in handshake: pending session store and manager.

Device A asks to sign in and receives a session token that is embedded in the
magic link. Device B opens the link and marks the pending session
authenticated. Device A polls the session status and, once it sees the
confirmation, consumes the session to finish signing in.
"""

import logging
import secrets
from collections.abc import Sequence
from datetime import datetime, timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from imaginghub.config import settings
from imaginghub.models import PendingAuthSession, SessionStatus
from imaginghub.services.clock import Clock, system_clock
from imaginghub.services.errors import (
    InvalidEmail,
    ProviderVerificationFailed,
    SessionAlreadyAuthenticated,
    SessionExpired,
    SessionNotAuthenticated,
    SessionNotFound,
)

logger = logging.getLogger(__name__)

# 32 random bytes, 256 bits of entropy
SESSION_TOKEN_BYTES = 32


def generate_session_token() -> str:
    """Generate an unguessable, URL-safe session token."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address, rejecting invalid syntax."""
    normalized = email.strip().lower()
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmail(str(e)) from e
    return normalized


class PendingSessionStore:
    """All reads and writes against the ``pending_auth_sessions`` table.

    Reads use ``populate_existing`` so a record loaded earlier in the same
    database session never masks a committed state change.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, record: PendingAuthSession) -> PendingAuthSession:
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_token(self, session_token: str) -> PendingAuthSession | None:
        stmt = (
            select(PendingAuthSession)
            .where(PendingAuthSession.session_token == session_token)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_authenticated(self, session_token: str, email: str, now: datetime) -> bool:
        """Conditionally flip ``is_authenticated``; True only for the caller that did it."""
        stmt = (
            update(PendingAuthSession)
            .where(
                col(PendingAuthSession.session_token) == session_token,
                col(PendingAuthSession.email) == email,
                col(PendingAuthSession.is_authenticated).is_(False),
                col(PendingAuthSession.expires_at) > now,
            )
            .values(is_authenticated=True, authenticated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def delete_authenticated(self, session_token: str, now: datetime) -> bool:
        """Conditionally delete a confirmed, unexpired record; True only for the winner."""
        stmt = (
            delete(PendingAuthSession)
            .where(
                col(PendingAuthSession.session_token) == session_token,
                col(PendingAuthSession.is_authenticated).is_(True),
                col(PendingAuthSession.expires_at) > now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def delete(self, session_token: str) -> int:
        stmt = (
            delete(PendingAuthSession)
            .where(col(PendingAuthSession.session_token) == session_token)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def delete_expired(self, now: datetime) -> int:
        stmt = (
            delete(PendingAuthSession)
            .where(col(PendingAuthSession.expires_at) <= now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def list_recent(self, limit: int = 50) -> Sequence[PendingAuthSession]:
        stmt = (
            select(PendingAuthSession)
            .order_by(col(PendingAuthSession.created_at).desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class SessionManager:
    """Creates, confirms, polls and consumes pending cross-device sessions."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = system_clock,
        ttl: timedelta | None = None,
    ):
        self.session = session
        self.store = PendingSessionStore(session)
        self.clock = clock
        self.ttl = ttl or timedelta(minutes=settings.pending_session_ttl_minutes)

    async def create_session(
        self,
        email: str,
        device_info: str | None = None,
        device_fingerprint: str | None = None,
    ) -> PendingAuthSession:
        """Persist a new pending session and return it.

        The caller embeds ``session_token`` in the magic link; nothing is sent
        from here.
        """
        normalized = normalize_email(email)
        now = self.clock.now()

        record = PendingAuthSession(
            session_token=generate_session_token(),
            email=normalized,
            device_info=device_info,
            device_fingerprint=device_fingerprint,
            is_authenticated=False,
            created_at=now,
            expires_at=now + self.ttl,
        )
        await self.store.add(record)
        await self.session.commit()

        logger.info(f"Created pending session {record.id} for {normalized}")
        return record

    async def authenticate_session(self, session_token: str, verified_email: str) -> None:
        """Mark a pending session as confirmed by the device that opened the link.

        ``verified_email`` is the address the identity provider vouched for when
        the link was opened; it must be the address the session was created for.

        Raises:
            SessionNotFound: no record carries this token
            SessionExpired: the record is past its expiry
            ProviderVerificationFailed: the verified address belongs to someone else
            SessionAlreadyAuthenticated: an earlier call already confirmed it
        """
        record = await self.store.get_by_token(session_token)
        if record is None:
            raise SessionNotFound()

        now = self.clock.now()
        if record.is_expired(now):
            raise SessionExpired()
        email = verified_email.strip().lower()
        if email != record.email:
            logger.warning(f"Pending session {record.id} confirmed by a different address")
            raise ProviderVerificationFailed("Verified email does not match the sign-in request")
        if record.is_authenticated:
            raise SessionAlreadyAuthenticated()

        if not await self.store.mark_authenticated(session_token, email, now):
            # Lost the race against a concurrent confirmation; nothing to undo
            await self.session.commit()
            raise SessionAlreadyAuthenticated()

        await self.session.commit()
        logger.info(f"Pending session {record.id} authenticated")

    async def poll_session(self, session_token: str) -> SessionStatus:
        """Report the current status of a pending session; never mutates it."""
        record = await self.store.get_by_token(session_token)
        if record is None:
            return SessionStatus.NOT_FOUND
        return record.status_at(self.clock.now())

    async def get_session(self, session_token: str) -> PendingAuthSession | None:
        return await self.store.get_by_token(session_token)

    async def consume_session(self, session_token: str) -> str:
        """Delete a confirmed session and return its email.

        Only one caller can consume a given session; the loser sees
        ``SessionNotFound``.
        """
        record = await self.store.get_by_token(session_token)
        if record is None:
            raise SessionNotFound()

        now = self.clock.now()
        if record.is_expired(now):
            raise SessionExpired()
        if not record.is_authenticated:
            raise SessionNotAuthenticated()

        email = record.email
        if not await self.store.delete_authenticated(session_token, now):
            await self.session.commit()
            raise SessionNotFound()

        await self.session.commit()
        logger.info(f"Pending session {record.id} consumed")
        return email

    async def discard_session(self, session_token: str) -> None:
        """Drop a pending session, e.g. when its magic link could not be sent."""
        await self.store.delete(session_token)
        await self.session.commit()

    async def sweep_expired(self) -> int:
        """Delete every expired pending session."""
        removed = await self.store.delete_expired(self.clock.now())
        await self.session.commit()
        if removed:
            logger.info(f"Swept {removed} expired pending sessions")
        return removed
