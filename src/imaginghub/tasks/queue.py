"""SAQ queue configuration for background tasks."""

from saq import CronJob, Queue

from imaginghub.config import settings

# Main task queue
queue = Queue.from_url(settings.redis_url)

# Pending sessions live for minutes, so sweep often
SWEEP_CRON = "*/10 * * * *"


def get_queue_settings() -> dict:
    """Get SAQ queue settings for the worker."""
    # Import here to avoid circular imports
    from imaginghub.tasks.maintenance import sweep_expired_sessions

    return {
        "queue": queue,
        "functions": [sweep_expired_sessions],
        "cron_jobs": [CronJob(sweep_expired_sessions, cron=SWEEP_CRON)],
        "concurrency": 2,  # Number of concurrent tasks
        "startup": startup,
        "shutdown": shutdown,
    }


async def startup(_ctx: dict) -> None:
    """Called when worker starts."""
    pass


async def shutdown(_ctx: dict) -> None:
    """Called when worker shuts down."""
    from imaginghub.database import close_db

    await close_db()
