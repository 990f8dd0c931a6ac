"""Health check endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlmodel import col, select

from imaginghub import __version__
from imaginghub.api.deps import ClockDep, SessionDep
from imaginghub.config import settings
from imaginghub.models import PendingAuthSession

logger = logging.getLogger(__name__)

router = APIRouter()


def missing_delivery_settings() -> list[str]:
    """Settings that must be filled in before magic links can go out."""
    missing = []
    if settings.identity_provider == "supabase":
        if not settings.identity_provider_url:
            missing.append("identity_provider_url")
        if not settings.identity_provider_service_key:
            missing.append("identity_provider_service_key")
    elif settings.email_backend == "smtp" and not settings.smtp_host:
        missing.append("smtp_host")
    elif settings.email_backend == "resend" and not settings.resend_api_key:
        missing.append("resend_api_key")
    return missing


@router.get("")
async def health_check():
    """Liveness probe."""
    return {"status": "ok", "version": __version__}


@router.get("/db")
async def health_check_db(session: SessionDep, clock: ClockDep):
    """Database connectivity, with the number of sign-ins waiting for confirmation."""
    try:
        stmt = (
            select(func.count())
            .select_from(PendingAuthSession)
            .where(col(PendingAuthSession.expires_at) > clock.now())
        )
        pending = (await session.execute(stmt)).scalar_one()
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )
    return {"status": "ok", "database": "connected", "pending_sessions": pending}


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Readiness probe: the database answers and sign-in links can be delivered.

    Returns 503 when either is not the case.
    """
    errors: dict[str, str] = {}

    try:
        await session.execute(select(1))
    except Exception as e:
        logger.error(f"Database readiness check failed: {e!r}")
        errors["database"] = str(e)

    missing = missing_delivery_settings()
    if missing:
        errors["delivery"] = f"Missing settings: {', '.join(missing)}"

    response = {
        "status": "degraded" if errors else "ok",
        "database": "disconnected" if "database" in errors else "connected",
        "identity_provider": settings.identity_provider,
        "errors": errors,
    }
    if errors:
        return JSONResponse(status_code=503, content=response)
    return response
