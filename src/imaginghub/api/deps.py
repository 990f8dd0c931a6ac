"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from imaginghub.database import get_session
from imaginghub.services.access import EmailPolicy, get_email_policy
from imaginghub.services.auth import AuthenticatedUser, AuthError, verify_token
from imaginghub.services.clock import Clock, system_clock
from imaginghub.services.errors import RateLimited
from imaginghub.services.handshake import SessionManager
from imaginghub.services.identity import IdentityProvider, get_identity_provider
from imaginghub.services.rate_limit import (
    RateLimitType,
    check_rate_limit,
    rate_limit_headers,
)

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


def get_clock() -> Clock:
    """Time source for request handlers (overridden in tests)."""
    return system_clock


ClockDep = Annotated[Clock, Depends(get_clock)]


def get_session_manager(session: SessionDep, clock: ClockDep) -> SessionManager:
    return SessionManager(session, clock=clock)


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
IdentityProviderDep = Annotated[IdentityProvider, Depends(get_identity_provider)]
EmailPolicyDep = Annotated[EmailPolicy, Depends(get_email_policy)]
BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]


async def get_current_user(
    session: SessionDep,
    credentials: BearerCredentials,
    clock: ClockDep,
) -> AuthenticatedUser:
    """Get the caller's device session or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await verify_token(session, credentials.credentials, clock=clock)
    except AuthError as e:
        logger.debug(f"Token verification failed: {e!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


class RateLimitDependency:
    """Dependency class for rate limiting endpoints.

    Usage:
        @router.post("/endpoint")
        async def endpoint(
            rate_limit: Annotated[None, Depends(RateLimitDependency(RateLimitType.AUTH))]
        ):
            ...
    """

    def __init__(self, limit_type: RateLimitType, per_session_token: bool = False) -> None:
        self.limit_type = limit_type
        self.per_session_token = per_session_token

    async def __call__(self, request: Request) -> None:
        """Check rate limit and raise 429 if exceeded."""
        subject = None
        if self.per_session_token:
            token = request.path_params.get("session_token")
            subject = f"session:{token}" if token else None

        result = await check_rate_limit(request, self.limit_type, subject)

        if not result.success:
            headers = rate_limit_headers(result)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"code": RateLimited.code, "message": RateLimited().message},
                headers=headers,
            )


# Pre-configured rate limit dependencies
AuthRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.AUTH))]
PollRateLimit = Annotated[
    None, Depends(RateLimitDependency(RateLimitType.POLL, per_session_token=True))
]
