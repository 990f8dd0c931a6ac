"""Base model helpers shared by the table models."""

from datetime import UTC, datetime

from nanoid import generate as nanoid_generate


def generate_nanoid() -> str:
    """Generate a nanoid string ID (21 chars, URL-safe)."""
    return nanoid_generate()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database.

    SQLite drops the offset of ``DateTime(timezone=True)`` columns, so values
    loaded there come back naive even though they were written as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
