"""Rate limiting service using sliding window algorithm."""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class RateLimitType(str, Enum):
    """Rate limit types for different endpoint categories."""

    API = "api"
    AUTH = "auth"
    POLL = "poll"


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit type."""

    requests: int
    window_seconds: int


# Starting a sign-in sends email, so it is the strictest; status polls arrive
# every few seconds from each waiting device
RATE_LIMIT_CONFIG: dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.API: RateLimitConfig(requests=60, window_seconds=60),
    RateLimitType.AUTH: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.POLL: RateLimitConfig(requests=60, window_seconds=60),
}

CLEANUP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds


class InMemoryRateLimiter:
    """In-memory sliding window limiter.

    Only suitable for a single API process; every process keeps its own
    counters. Keys whose window has emptied are dropped at most once per
    ``cleanup_interval`` seconds.
    """

    def __init__(self, cleanup_interval: float = CLEANUP_INTERVAL_SECONDS) -> None:
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    async def check(self, identifier: str, limit_type: RateLimitType) -> RateLimitResult:
        """Record a request for ``identifier`` unless its window is full."""
        config = RATE_LIMIT_CONFIG[limit_type]
        key = f"{limit_type.value}:{identifier}"
        now = time.time()
        window_start = now - config.window_seconds

        async with self._lock:
            if now - self._last_cleanup >= self.cleanup_interval:
                self._prune(now)

            timestamps = [t for t in self._requests[key] if t > window_start]
            self._requests[key] = timestamps

            if len(timestamps) >= config.requests:
                # Window frees up when the oldest request falls out of it
                return RateLimitResult(
                    success=False,
                    limit=config.requests,
                    remaining=0,
                    reset=int(min(timestamps) + config.window_seconds),
                )

            timestamps.append(now)
            return RateLimitResult(
                success=True,
                limit=config.requests,
                remaining=config.requests - len(timestamps),
                reset=int(now + config.window_seconds),
            )

    def reset(self) -> None:
        """Reset all rate limit entries. Useful for testing."""
        self._requests.clear()

    async def cleanup_old_entries(self) -> int:
        """Remove expired entries from memory.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            return self._prune(time.time())

    def _prune(self, now: float) -> int:
        self._last_cleanup = now
        keys_to_remove = []
        for key, timestamps in self._requests.items():
            try:
                limit_type = RateLimitType(key.split(":")[0])
                window = RATE_LIMIT_CONFIG[limit_type].window_seconds
            except ValueError:
                window = 60

            valid_timestamps = [t for t in timestamps if t > now - window]
            if valid_timestamps:
                self._requests[key] = valid_timestamps
            else:
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del self._requests[key]
        return len(keys_to_remove)


# Global rate limiter instance
_rate_limiter = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    """Get the global rate limiter instance."""
    return _rate_limiter


def get_client_ip(request: Request) -> str | None:
    """Extract client IP, preferring headers set by proxies and load balancers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return None


def get_identifier(ip: str | None, subject: str | None = None) -> str:
    """Get identifier for rate limiting.

    Status polls are limited per session token so that several devices behind
    one NAT don't share a budget; everything else is limited per client IP.
    """
    if subject:
        return subject
    return f"ip:{ip or 'unknown'}"


async def check_rate_limit(
    request: Request,
    limit_type: RateLimitType,
    subject: str | None = None,
) -> RateLimitResult:
    """Check rate limit for a request."""
    identifier = get_identifier(get_client_ip(request), subject)
    return await get_rate_limiter().check(identifier, limit_type)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Generate rate limit headers for a response."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }

    if not result.success:
        retry_after = max(0, result.reset - int(time.time()))
        headers["Retry-After"] = str(retry_after)

    return headers
