"""Initiating-device side of the cross-device handshake.

After a magic link has been sent, the device that asked to sign in polls the
pending session until it reaches a terminal state:

    idle -> awaiting_confirmation -> confirmed | expired | failed
                                  -> cancelled (teardown)

The loop takes its time source and its cancellation signal as arguments, so a
test can run the whole fifteen-minute lifetime instantly with a fake clock.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from imaginghub.config import settings
from imaginghub.models import SessionStatus
from imaginghub.services.clock import Clock, system_clock
from imaginghub.services.errors import (
    HandshakeError,
    SessionExpired,
    SessionNotFound,
    TransportError,
)

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str], Awaitable[SessionStatus]]
CompletionHandler = Callable[[str], Awaitable[Any]]


class PollerState(str, Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {PollerState.CONFIRMED, PollerState.EXPIRED, PollerState.FAILED, PollerState.CANCELLED}
)


class CancellationToken:
    """One-shot signal telling a poller to stop issuing requests."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class PollResult:
    """Terminal outcome of a polling run."""

    state: PollerState
    polls: int
    error: HandshakeError | None = None
    completion: Any = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


class HandshakePoller:
    """Polls a pending session until it is confirmed, expires or fails."""

    def __init__(
        self,
        session_token: str,
        fetch_status: StatusFetcher,
        on_confirmed: CompletionHandler | None = None,
        clock: Clock = system_clock,
        interval: float | None = None,
        request_timeout: float | None = None,
        max_consecutive_failures: int | None = None,
        deadline: datetime | None = None,
        cancel_token: CancellationToken | None = None,
        on_state_change: Callable[[PollerState], None] | None = None,
    ):
        self.session_token = session_token
        self.fetch_status = fetch_status
        self.on_confirmed = on_confirmed
        self.clock = clock
        self.interval = interval if interval is not None else settings.poll_interval_seconds
        self.request_timeout = (
            request_timeout
            if request_timeout is not None
            else settings.poll_request_timeout_seconds
        )
        self.max_consecutive_failures = (
            max_consecutive_failures
            if max_consecutive_failures is not None
            else settings.poll_max_consecutive_failures
        )
        if self.request_timeout >= self.interval:
            raise ValueError("request_timeout must be shorter than the poll interval")

        self._deadline = deadline
        self.cancel_token = cancel_token or CancellationToken()
        self.on_state_change = on_state_change
        self._state = PollerState.IDLE
        self._task: asyncio.Task[PollResult] | None = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state in TERMINAL_STATES

    def _transition(self, state: PollerState) -> None:
        logger.debug(f"Poller {self.session_token[:8]}: {self._state.value} -> {state.value}")
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _finish(
        self,
        state: PollerState,
        polls: int,
        error: HandshakeError | None = None,
        completion: Any = None,
    ) -> PollResult:
        self._transition(state)
        return PollResult(state=state, polls=polls, error=error, completion=completion)

    async def _poll_once(self) -> SessionStatus:
        try:
            return await asyncio.wait_for(
                self.fetch_status(self.session_token),
                timeout=self.request_timeout,
            )
        except TimeoutError as e:
            raise TransportError("Status request timed out") from e

    async def run(self) -> PollResult:
        """Poll until a terminal state is reached and return it."""
        if self._state is not PollerState.IDLE:
            raise RuntimeError("Poller has already been started")

        # No poll loop may outlive the pending session it watches
        deadline = self.clock.now() + timedelta(minutes=settings.pending_session_ttl_minutes)
        if self._deadline is not None and self._deadline < deadline:
            deadline = self._deadline

        self._transition(PollerState.AWAITING_CONFIRMATION)
        polls = 0
        failures = 0

        try:
            while True:
                if self.cancel_token.cancelled:
                    return self._finish(PollerState.CANCELLED, polls)
                if self.clock.now() >= deadline:
                    return self._finish(PollerState.EXPIRED, polls, SessionExpired())

                polls += 1
                try:
                    status = await self._poll_once()
                except TransportError as e:
                    failures += 1
                    logger.warning(
                        f"Status poll failed ({failures}/{self.max_consecutive_failures}): {e}"
                    )
                    if failures >= self.max_consecutive_failures:
                        return self._finish(PollerState.FAILED, polls, e)
                except HandshakeError as e:
                    logger.error(f"Status poll rejected: {e}")
                    return self._finish(PollerState.FAILED, polls, e)
                except Exception as e:
                    logger.exception("Status poll raised unexpectedly")
                    return self._finish(PollerState.FAILED, polls, HandshakeError(str(e)))
                else:
                    failures = 0
                    if status is SessionStatus.AUTHENTICATED:
                        return await self._confirm(polls)
                    if status is SessionStatus.EXPIRED:
                        return self._finish(PollerState.EXPIRED, polls, SessionExpired())
                    if status is SessionStatus.NOT_FOUND:
                        return self._finish(PollerState.EXPIRED, polls, SessionNotFound())

                if self.cancel_token.cancelled:
                    return self._finish(PollerState.CANCELLED, polls)
                await self.clock.sleep(self.interval)
        except asyncio.CancelledError:
            if not self.done:
                self._transition(PollerState.CANCELLED)
            raise

    async def _confirm(self, polls: int) -> PollResult:
        """Finish the sign-in; the run only counts as confirmed once that succeeds."""
        if self.on_confirmed is None:
            return self._finish(PollerState.CONFIRMED, polls)

        try:
            completion = await self.on_confirmed(self.session_token)
        except HandshakeError as e:
            logger.error(f"Completing sign-in failed: {e}")
            return self._finish(PollerState.FAILED, polls, e)
        except Exception as e:
            logger.exception("Completing sign-in raised unexpectedly")
            return self._finish(PollerState.FAILED, polls, HandshakeError(str(e)))
        return self._finish(PollerState.CONFIRMED, polls, completion=completion)

    def start(self) -> asyncio.Task[PollResult]:
        """Run the poller as a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self) -> None:
        """Stop polling immediately; no further requests are issued."""
        if self.done:
            return
        self.cancel_token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def __aenter__(self) -> "HandshakePoller":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
