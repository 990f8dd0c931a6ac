"""SQLModel database models."""

from imaginghub.models.base import ensure_utc, generate_nanoid, utcnow
from imaginghub.models.pending_auth_session import PendingAuthSession, SessionStatus
from imaginghub.models.user_session import UserSession, UserSessionRead

__all__ = [
    "PendingAuthSession",
    "SessionStatus",
    "UserSession",
    "UserSessionRead",
    "ensure_utc",
    "generate_nanoid",
    "utcnow",
]
