"""Magic link landing route for the confirming device."""

from fastapi import APIRouter, Query

from imaginghub.api.deps import BearerCredentials, IdentityProviderDep, SessionManagerDep
from imaginghub.schemas import CallbackResponse
from imaginghub.services.callback import handle_callback

router = APIRouter()


@router.get("/callback", response_model=CallbackResponse)
async def auth_callback(
    manager: SessionManagerDep,
    provider: IdentityProviderDep,
    credentials: BearerCredentials,
    session: str | None = Query(default=None, description="Pending session token"),
    access_token: str | None = Query(default=None, description="Provider access token"),
):
    """
    Land a magic link.

    With ``?session=<token>`` this confirms a cross-device sign-in, provided the
    link's provider access token checks out for the address that asked to sign
    in. The local provider puts that token in ``?access_token=``; a hosted
    provider hands it to the landing page, which forwards it as a Bearer header.
    Without a session token the browser was already signed in by the identity
    provider and is sent home. The response always describes a terminal state.
    """
    provider_token = credentials.credentials if credentials else access_token
    result = await handle_callback(manager, provider, session, provider_token)
    return CallbackResponse(
        status=result.status,
        flow=result.flow,
        message=result.message,
        error_code=result.error_code,
        redirect_to=result.redirect_to,
        redirect_delay_seconds=result.redirect_delay_seconds,
    )
