"""Pydantic schemas for API requests/responses."""

from imaginghub.schemas.auth import (
    CallbackResponse,
    HandshakeCompleteRequest,
    HandshakeStartRequest,
    HandshakeStartResponse,
    HandshakeStatusResponse,
    ProviderUserRead,
    RevokeOthersResponse,
    SessionListResponse,
    TokenResponse,
    UserRead,
    VerifyResponse,
)
from imaginghub.schemas.common import ErrorResponse, SuccessResponse

__all__ = [
    "CallbackResponse",
    "ErrorResponse",
    "HandshakeCompleteRequest",
    "HandshakeStartRequest",
    "HandshakeStartResponse",
    "HandshakeStatusResponse",
    "ProviderUserRead",
    "RevokeOthersResponse",
    "SessionListResponse",
    "SuccessResponse",
    "TokenResponse",
    "UserRead",
    "VerifyResponse",
]
