"""Maintenance background tasks for cleanup operations."""

import logging
from typing import Any

from imaginghub.database import get_session_context
from imaginghub.services.device_sessions import DeviceSessionService
from imaginghub.services.handshake import SessionManager

logger = logging.getLogger(__name__)

# Timeout for maintenance tasks (5 minutes)
MAINTENANCE_TIMEOUT_SECONDS = 5 * 60


async def sweep_expired_sessions(ctx: dict[str, Any]) -> dict[str, Any]:
    """Delete expired pending sessions and expired or revoked device sessions.

    Pending sessions that were never confirmed, or confirmed but never
    consumed, are only ever removed here.

    Args:
        ctx: SAQ context

    Returns:
        Dict with the number of rows removed from each table
    """
    async with get_session_context() as session:
        try:
            pending = await SessionManager(session).sweep_expired()
            devices = await DeviceSessionService(session).sweep_expired()
        except Exception as e:
            error = f"Session sweep failed: {e}"
            logger.exception(error)
            return {"success": False, "error": error}

    logger.info(f"Session sweep complete: {pending} pending, {devices} device sessions removed")
    return {
        "success": True,
        "pending_sessions_deleted": pending,
        "device_sessions_deleted": devices,
    }


# Set SAQ job timeouts
sweep_expired_sessions.timeout = MAINTENANCE_TIMEOUT_SECONDS  # type: ignore[attr-defined]
