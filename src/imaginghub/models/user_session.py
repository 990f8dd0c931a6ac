"""Device session model."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from imaginghub.models.base import ensure_utc, generate_nanoid, utcnow


class UserSession(SQLModel, table=True):
    """An application session issued to one signed-in device."""

    __tablename__ = "user_sessions"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(index=True, max_length=255)
    token_hash: str = Field(unique=True, index=True, max_length=64, description="SHA-256 of the access token")
    device_name: str | None = Field(default=None, max_length=100)
    device_type: str | None = Field(default=None, max_length=20)
    browser_name: str | None = Field(default=None, max_length=50)
    os_name: str | None = Field(default=None, max_length=50)
    user_agent: str | None = Field(default=None, max_length=1000)
    ip_address: str | None = Field(default=None, max_length=45)
    is_active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    last_activity: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    expires_at: datetime = Field(
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and ensure_utc(self.expires_at) > now


class UserSessionRead(SQLModel):
    """Schema for reading a device session."""

    id: str
    device_name: str | None
    device_type: str | None
    browser_name: str | None
    os_name: str | None
    ip_address: str | None
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    is_current: bool = False
