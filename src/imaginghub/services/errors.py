"""Authentication error taxonomy and user-facing messages."""

# Error codes mapped to messages shown to the user
AUTH_ERROR_MESSAGES: dict[str, str] = {
    "invalid_email": "Please enter a valid email address.",
    "unauthorized_domain": "This email address is not authorized to sign in. Please request access.",
    "rate_limit": "Too many sign-in attempts. Please try again in a few minutes.",
    "email_not_sent": "Unable to send the sign-in email. Please try again.",
    "network_error": "Connection problem. Please check your internet and try again.",
    "timeout": "Request timed out. Please try again.",
    "session_expired": "This sign-in link has expired. Please request a new one.",
    "session_not_found": "This sign-in link is invalid. Please request a new one.",
    "session_already_authenticated": "This sign-in link has already been used.",
    "session_not_authenticated": "Sign-in has not been confirmed yet.",
    "invalid_token": "Your session is invalid. Please sign in again.",
    "unknown_error": "Authentication failed. Please try again.",
}


def get_auth_error_message(code: str | None) -> str:
    """Get the user-facing message for an error code."""
    if not code:
        return AUTH_ERROR_MESSAGES["unknown_error"]
    return AUTH_ERROR_MESSAGES.get(code, AUTH_ERROR_MESSAGES["unknown_error"])


class HandshakeError(Exception):
    """Base class for sign-in errors.

    ``code`` is stable and safe to hand to clients; ``message`` is the text a
    user should see.
    """

    code = "unknown_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    @property
    def message(self) -> str:
        return get_auth_error_message(self.code)


class SessionNotFound(HandshakeError):
    code = "session_not_found"


class SessionExpired(HandshakeError):
    code = "session_expired"


class SessionAlreadyAuthenticated(HandshakeError):
    """Benign: the session was confirmed by an earlier request."""

    code = "session_already_authenticated"


class SessionNotAuthenticated(HandshakeError):
    code = "session_not_authenticated"


class InvalidEmail(HandshakeError):
    code = "invalid_email"


class EmailNotAuthorized(HandshakeError):
    code = "unauthorized_domain"


class ProviderVerificationFailed(HandshakeError):
    code = "invalid_token"


class MagicLinkNotSent(HandshakeError):
    code = "email_not_sent"


class TransportError(HandshakeError):
    """Network failure or timeout talking to a remote service."""

    code = "network_error"


class RateLimited(TransportError):
    """The server asked the client to slow down; retrying later may succeed."""

    code = "rate_limit"


ERRORS_BY_CODE: dict[str, type[HandshakeError]] = {
    cls.code: cls
    for cls in (
        SessionNotFound,
        SessionExpired,
        SessionAlreadyAuthenticated,
        SessionNotAuthenticated,
        InvalidEmail,
        EmailNotAuthorized,
        ProviderVerificationFailed,
        MagicLinkNotSent,
        TransportError,
        RateLimited,
    )
}


def error_for_code(code: str | None) -> type[HandshakeError]:
    """Exception class for an error code received over the wire."""
    return ERRORS_BY_CODE.get(code or "", HandshakeError)
