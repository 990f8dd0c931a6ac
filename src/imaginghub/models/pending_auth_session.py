"""Pending auth session model for cross-device magic link sign-in."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from imaginghub.models.base import ensure_utc, generate_nanoid, utcnow


class SessionStatus(str, Enum):
    """Status of a pending session as seen by the polling device."""

    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class PendingAuthSession(SQLModel, table=True):
    """Short-lived record correlating an in-progress cross-device handshake.

    The ``session_token`` is the only handle that leaves the server; it is
    embedded in the magic link and used by the initiating device to poll.
    """

    __tablename__ = "pending_auth_sessions"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    session_token: str = Field(unique=True, index=True, max_length=64)
    email: str = Field(index=True, max_length=255)
    device_info: str | None = Field(default=None, max_length=1000)
    device_fingerprint: str | None = Field(default=None, max_length=255)
    is_authenticated: bool = Field(default=False, nullable=False)
    authenticated_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    expires_at: datetime = Field(
        nullable=False,
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )

    def is_expired(self, now: datetime) -> bool:
        """Expired records are dead regardless of their authentication state."""
        return ensure_utc(self.expires_at) <= now

    def status_at(self, now: datetime) -> SessionStatus:
        if self.is_expired(now):
            return SessionStatus.EXPIRED
        if self.is_authenticated:
            return SessionStatus.AUTHENTICATED
        return SessionStatus.PENDING
