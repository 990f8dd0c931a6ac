"""Shared API utilities."""

from fastapi import HTTPException, Request, status

from imaginghub.services.errors import (
    EmailNotAuthorized,
    HandshakeError,
    InvalidEmail,
    MagicLinkNotSent,
    ProviderVerificationFailed,
    RateLimited,
    SessionAlreadyAuthenticated,
    SessionExpired,
    SessionNotAuthenticated,
    SessionNotFound,
    TransportError,
)
from imaginghub.services.rate_limit import get_client_ip

# HTTP status for each handshake error
ERROR_STATUS: dict[type[HandshakeError], int] = {
    InvalidEmail: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EmailNotAuthorized: status.HTTP_403_FORBIDDEN,
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    SessionExpired: status.HTTP_410_GONE,
    SessionNotAuthenticated: status.HTTP_409_CONFLICT,
    SessionAlreadyAuthenticated: status.HTTP_409_CONFLICT,
    ProviderVerificationFailed: status.HTTP_401_UNAUTHORIZED,
    MagicLinkNotSent: status.HTTP_502_BAD_GATEWAY,
    TransportError: status.HTTP_502_BAD_GATEWAY,
    RateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
}


def handshake_http_error(error: HandshakeError) -> HTTPException:
    """Translate a handshake error into an HTTP error carrying its code.

    Example body: ``{"detail": {"code": "session_expired", "message": "..."}}``
    """
    status_code = ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )


def client_device(request: Request) -> tuple[str | None, str | None]:
    """User-Agent and client address of a request."""
    return request.headers.get("user-agent"), get_client_ip(request)
