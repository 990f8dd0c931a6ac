"""Background task processing."""

from imaginghub.tasks.maintenance import sweep_expired_sessions
from imaginghub.tasks.queue import get_queue_settings, queue

__all__ = ["get_queue_settings", "queue", "sweep_expired_sessions"]
