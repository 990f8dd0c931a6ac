"""Signed-in device sessions: listing, revocation and activity tracking."""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from imaginghub.models import UserSession
from imaginghub.services.clock import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass
class DeviceInfo:
    """Coarse device description parsed from a User-Agent header."""

    device_type: str | None = None
    device_name: str | None = None
    browser_name: str | None = None
    os_name: str | None = None

    def describe(self) -> str | None:
        if not (self.browser_name or self.os_name or self.device_name):
            return None
        browser = self.browser_name or "Unknown browser"
        platform = self.device_name or self.os_name or "unknown device"
        return f"{browser} on {platform}"


def _has(pattern: str, value: str) -> bool:
    return re.search(pattern, value, re.IGNORECASE) is not None


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Best-effort parse of device type, OS and browser."""
    info = DeviceInfo()
    if not user_agent:
        return info

    if _has(r"Mobile|Android|iPhone|iPad", user_agent):
        info.device_type = "mobile"
        if _has(r"iPhone|iPad", user_agent):
            info.device_name = "iPad" if _has(r"iPad", user_agent) else "iPhone"
            info.os_name = "iOS"
        elif _has(r"Android", user_agent):
            info.device_name = "Android Device"
            info.os_name = "Android"
    else:
        info.device_type = "desktop"
        if _has(r"Windows", user_agent):
            info.os_name = "Windows"
        elif _has(r"Mac", user_agent):
            info.os_name = "macOS"
        elif _has(r"Linux", user_agent):
            info.os_name = "Linux"

    # Edge and Chrome both advertise Safari; order matters
    if _has(r"Edg", user_agent):
        info.browser_name = "Edge"
    elif _has(r"Firefox", user_agent):
        info.browser_name = "Firefox"
    elif _has(r"Chrome", user_agent):
        info.browser_name = "Chrome"
    elif _has(r"Safari", user_agent):
        info.browser_name = "Safari"

    return info


class DeviceSessionService:
    """Reads and writes ``user_sessions`` rows."""

    def __init__(self, session: AsyncSession, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def build(
        self,
        email: str,
        expires_at: datetime,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> UserSession:
        """Create an unsaved device session; the caller fills in ``token_hash``."""
        info = parse_user_agent(user_agent)
        now = self.clock.now()
        return UserSession(
            email=email,
            token_hash="",
            device_type=info.device_type,
            device_name=info.device_name,
            browser_name=info.browser_name,
            os_name=info.os_name,
            user_agent=user_agent,
            ip_address=ip_address,
            created_at=now,
            last_activity=now,
            expires_at=expires_at,
        )

    async def add(self, record: UserSession) -> UserSession:
        self.session.add(record)
        await self.session.commit()
        logger.info(f"Created device session {record.id} for {record.email}")
        return record

    async def get(self, session_id: str) -> UserSession | None:
        stmt = (
            select(UserSession)
            .where(UserSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self, email: str) -> Sequence[UserSession]:
        """Active, unexpired sessions for ``email``, most recently used first."""
        stmt = (
            select(UserSession)
            .where(
                UserSession.email == email,
                col(UserSession.is_active).is_(True),
                col(UserSession.expires_at) > self.clock.now(),
            )
            .order_by(col(UserSession.last_activity).desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def revoke(self, session_id: str, email: str) -> bool:
        """Revoke one session; only its owner may do so."""
        stmt = (
            update(UserSession)
            .where(
                col(UserSession.id) == session_id,
                col(UserSession.email) == email,
                col(UserSession.is_active).is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        revoked = result.rowcount == 1  # type: ignore[attr-defined]
        if revoked:
            logger.info(f"Revoked device session {session_id}")
        return revoked

    async def revoke_others(self, email: str, keep_session_id: str | None = None) -> int:
        """Revoke every active session of ``email`` except ``keep_session_id``."""
        stmt = (
            update(UserSession)
            .where(col(UserSession.email) == email, col(UserSession.is_active).is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if keep_session_id:
            stmt = stmt.where(col(UserSession.id) != keep_session_id)
        result = await self.session.execute(stmt)
        await self.session.commit()
        revoked = result.rowcount  # type: ignore[attr-defined]
        logger.info(f"Revoked {revoked} device sessions for {email}")
        return revoked

    async def touch(self, record: UserSession) -> None:
        record.last_activity = self.clock.now()
        await self.session.commit()

    async def sweep_expired(self) -> int:
        """Delete sessions that are expired or were revoked."""
        stmt = (
            delete(UserSession)
            .where(
                or_(
                    col(UserSession.expires_at) <= self.clock.now(),
                    col(UserSession.is_active).is_(False),
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount  # type: ignore[attr-defined]
