"""Request and response schemas for the auth endpoints."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from imaginghub.models import SessionStatus, UserSessionRead
from imaginghub.services.callback import CallbackFlow, CallbackStatus


class HandshakeStartRequest(BaseModel):
    """Request body for starting a cross-device sign-in."""

    email: EmailStr
    device_info: str | None = Field(default=None, max_length=1000)
    device_fingerprint: str | None = Field(default=None, max_length=255)


class HandshakeStartResponse(BaseModel):
    """Response after the magic link has been sent."""

    session_token: str
    expires_at: datetime
    poll_interval_seconds: float
    message: str


class HandshakeStatusResponse(BaseModel):
    """Current status of a pending session."""

    status: SessionStatus
    expires_at: datetime | None = None


class HandshakeCompleteRequest(BaseModel):
    """Request body for completing a confirmed sign-in."""

    remember_me: bool = False


class UserRead(BaseModel):
    """The signed-in user."""

    email: str
    net_id: str


class TokenResponse(BaseModel):
    """Response containing an access token for a new device session."""

    access_token: str
    token_type: str = "bearer"
    session_id: str
    expires_at: datetime
    user: UserRead


class CallbackResponse(BaseModel):
    """What the magic link landing page should display."""

    status: CallbackStatus
    flow: CallbackFlow
    message: str
    error_code: str | None = None
    redirect_to: str | None = None
    redirect_delay_seconds: float | None = None


class ProviderUserRead(BaseModel):
    id: str
    email: str
    net_id: str | None


class VerifyResponse(BaseModel):
    """Response for a verified identity provider token."""

    user: ProviderUserRead


class SessionListResponse(BaseModel):
    sessions: list[UserSessionRead]


class RevokeOthersResponse(BaseModel):
    revoked: int
