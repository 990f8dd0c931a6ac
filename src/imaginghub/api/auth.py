"""Authentication endpoints: the cross-device handshake and device sessions."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from imaginghub.api.deps import (
    AuthRateLimit,
    BearerCredentials,
    ClockDep,
    CurrentUser,
    EmailPolicyDep,
    IdentityProviderDep,
    PollRateLimit,
    SessionDep,
    SessionManagerDep,
)
from imaginghub.api.utils import client_device, handshake_http_error
from imaginghub.config import settings
from imaginghub.models import SessionStatus, UserSessionRead, ensure_utc
from imaginghub.schemas import (
    HandshakeCompleteRequest,
    HandshakeStartRequest,
    HandshakeStartResponse,
    HandshakeStatusResponse,
    ProviderUserRead,
    RevokeOthersResponse,
    SessionListResponse,
    SuccessResponse,
    TokenResponse,
    UserRead,
    VerifyResponse,
)
from imaginghub.services.auth import issue_session
from imaginghub.services.device_sessions import DeviceSessionService, parse_user_agent
from imaginghub.services.errors import HandshakeError

logger = logging.getLogger(__name__)

router = APIRouter()


def build_magic_link(session_token: str) -> str:
    """Callback URL the confirming device opens."""
    return f"{settings.app_url}/auth/callback?session={session_token}"


@router.post("/handshake", response_model=HandshakeStartResponse)
async def start_handshake(
    body: HandshakeStartRequest,
    request: Request,
    manager: SessionManagerDep,
    provider: IdentityProviderDep,
    policy: EmailPolicyDep,
    _rate_limit: AuthRateLimit,
):
    """
    Start a cross-device sign-in.

    Creates a pending session and asks the identity provider to email a magic
    link pointing at it. The caller then polls the returned session token.
    """
    user_agent, _ = client_device(request)
    device_info = body.device_info or parse_user_agent(user_agent).describe()

    try:
        policy.require(body.email)
        pending = await manager.create_session(
            body.email,
            device_info=device_info,
            device_fingerprint=body.device_fingerprint,
        )
    except HandshakeError as e:
        raise handshake_http_error(e) from e

    magic_link = build_magic_link(pending.session_token)
    try:
        await provider.send_magic_link(
            pending.email,
            redirect_to=magic_link,
            requesting_device=device_info,
        )
    except HandshakeError as e:
        # A session nobody can confirm is useless; drop it right away
        await manager.discard_session(pending.session_token)
        raise handshake_http_error(e) from e

    return HandshakeStartResponse(
        session_token=pending.session_token,
        expires_at=pending.expires_at,
        poll_interval_seconds=settings.poll_interval_seconds,
        message="Check your email for a magic link",
    )


@router.get("/handshake/{session_token}", response_model=HandshakeStatusResponse)
async def poll_handshake(
    session_token: str,
    manager: SessionManagerDep,
    _rate_limit: PollRateLimit,
):
    """Report the status of a pending session. Never changes it."""
    status_ = await manager.poll_session(session_token)
    if status_ is SessionStatus.NOT_FOUND:
        return HandshakeStatusResponse(status=status_)

    pending = await manager.get_session(session_token)
    return HandshakeStatusResponse(
        status=status_,
        expires_at=ensure_utc(pending.expires_at) if pending else None,
    )


@router.post("/handshake/{session_token}/complete", response_model=TokenResponse)
async def complete_handshake(
    session_token: str,
    request: Request,
    session: SessionDep,
    manager: SessionManagerDep,
    clock: ClockDep,
    _rate_limit: AuthRateLimit,
    body: HandshakeCompleteRequest | None = None,
):
    """
    Finish signing in the initiating device.

    Consumes the confirmed pending session and issues an access token bound to
    a new device session.
    """
    try:
        email = await manager.consume_session(session_token)
    except HandshakeError as e:
        raise handshake_http_error(e) from e

    user_agent, ip_address = client_device(request)
    access_token, device_session = await issue_session(
        session,
        email,
        user_agent=user_agent,
        ip_address=ip_address,
        remember_me=body.remember_me if body else False,
        clock=clock,
    )

    return TokenResponse(
        access_token=access_token,
        session_id=device_session.id,
        expires_at=device_session.expires_at,
        user=UserRead(email=email, net_id=email.split("@")[0]),
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_provider_token(
    credentials: BearerCredentials,
    provider: IdentityProviderDep,
    policy: EmailPolicyDep,
    _rate_limit: AuthRateLimit,
):
    """
    Verify an identity provider access token.

    Returns the provider's user when the token is valid and its email may sign in.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user = await provider.verify_token(credentials.credentials)
        policy.require(user.email or "")
    except HandshakeError as e:
        raise handshake_http_error(e) from e

    return VerifyResponse(
        user=ProviderUserRead(id=user.id, email=user.email or "", net_id=user.net_id)
    )


@router.get("/me", response_model=UserRead)
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return UserRead(email=user.email, net_id=user.net_id)


@router.post("/logout", response_model=SuccessResponse)
async def logout(user: CurrentUser, session: SessionDep):
    """Revoke the device session the request was made with."""
    await DeviceSessionService(session).revoke(user.session.id, user.email)
    return SuccessResponse(message="Logged out successfully")


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(user: CurrentUser, session: SessionDep):
    """List the caller's active device sessions."""
    records = await DeviceSessionService(session).list_active(user.email)
    sessions = []
    for record in records:
        item = UserSessionRead.model_validate(record, from_attributes=True)
        item.is_current = record.id == user.session.id
        sessions.append(item)
    return SessionListResponse(sessions=sessions)


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
async def revoke_session(session_id: str, user: CurrentUser, session: SessionDep):
    """Sign out one of the caller's devices."""
    revoked = await DeviceSessionService(session).revoke(session_id, user.email)
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return SuccessResponse(message="Session revoked")


@router.post("/sessions/revoke-others", response_model=RevokeOthersResponse)
async def revoke_other_sessions(user: CurrentUser, session: SessionDep):
    """Sign out every device except the one making the request."""
    revoked = await DeviceSessionService(session).revoke_others(
        user.email, keep_session_id=user.session.id
    )
    return RevokeOthersResponse(revoked=revoked)
