"""Confirming-device side of the handshake: the magic link landing."""

import logging
from dataclasses import dataclass
from enum import Enum

from imaginghub.config import settings
from imaginghub.services.errors import (
    HandshakeError,
    ProviderVerificationFailed,
    SessionAlreadyAuthenticated,
    get_auth_error_message,
)
from imaginghub.services.handshake import SessionManager
from imaginghub.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

CROSS_DEVICE_SUCCESS = (
    "Authentication successful! You can now close this tab and return to your original device."
)
SAME_DEVICE_SUCCESS = "Authentication successful! Redirecting..."


class CallbackStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class CallbackFlow(str, Enum):
    CROSS_DEVICE = "cross_device"
    SAME_DEVICE = "same_device"


@dataclass
class CallbackResult:
    """Terminal state shown on the page the magic link opened."""

    status: CallbackStatus
    flow: CallbackFlow
    message: str
    error_code: str | None = None
    redirect_to: str | None = None
    redirect_delay_seconds: float | None = None


async def handle_callback(
    manager: SessionManager,
    provider: IdentityProvider,
    session_token: str | None,
    provider_token: str | None = None,
) -> CallbackResult:
    """Finish the confirming device's part of a sign-in.

    With a session token this is the cross-device flow. The provider token the
    magic link carried is verified first, and only a token for the address the
    sign-in was requested for may mark the pending session authenticated.
    Without a session token the identity provider has already signed this browser in and
    we only send it home. Every outcome is terminal; errors are never raised.
    """
    if not session_token:
        return CallbackResult(
            status=CallbackStatus.SUCCESS,
            flow=CallbackFlow.SAME_DEVICE,
            message=SAME_DEVICE_SUCCESS,
            redirect_to="/",
            redirect_delay_seconds=settings.same_device_redirect_delay_seconds,
        )

    try:
        if not provider_token:
            raise ProviderVerificationFailed("Sign-in link is missing its credential")
        user = await provider.verify_token(provider_token)
        await manager.authenticate_session(session_token, user.email or "")
    except SessionAlreadyAuthenticated:
        # Page reloads and duplicate tabs land here
        logger.info("Callback for an already authenticated session")
    except HandshakeError as e:
        logger.warning(f"Cross-device callback rejected: {e.code}")
        return CallbackResult(
            status=CallbackStatus.ERROR,
            flow=CallbackFlow.CROSS_DEVICE,
            message=e.message,
            error_code=e.code,
        )
    except Exception:
        logger.exception("Auth callback error")
        return CallbackResult(
            status=CallbackStatus.ERROR,
            flow=CallbackFlow.CROSS_DEVICE,
            message=get_auth_error_message("unknown_error"),
            error_code="unknown_error",
        )

    return CallbackResult(
        status=CallbackStatus.SUCCESS,
        flow=CallbackFlow.CROSS_DEVICE,
        message=CROSS_DEVICE_SUCCESS,
    )
