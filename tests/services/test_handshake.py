"""Session manager tests: creation, confirmation, polling and consumption."""

import asyncio

import pytest

from imaginghub.models import PendingAuthSession, SessionStatus, ensure_utc
from imaginghub.services.clock import FakeClock
from imaginghub.services.errors import (
    InvalidEmail,
    ProviderVerificationFailed,
    SessionAlreadyAuthenticated,
    SessionExpired,
    SessionNotAuthenticated,
    SessionNotFound,
)
from imaginghub.services.handshake import SessionManager, normalize_email
from tests.conftest import TEST_EMAIL


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_creates_pending_record(self, manager: SessionManager, fake_clock: FakeClock):
        record = await manager.create_session(TEST_EMAIL, device_info="Safari on iPhone")

        assert record.is_authenticated is False
        assert record.authenticated_at is None
        assert record.device_info == "Safari on iPhone"
        assert record.created_at == fake_clock.now()
        assert (record.expires_at - record.created_at).total_seconds() == 15 * 60
        assert len(record.session_token) >= 43

    @pytest.mark.asyncio
    async def test_normalizes_email(self, manager: SessionManager):
        record = await manager.create_session("  Researcher@Example.EDU ")
        assert record.email == "researcher@example.edu"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["", "not-an-email", "a@", "@example.edu"])
    async def test_rejects_invalid_email(self, manager: SessionManager, email: str):
        with pytest.raises(InvalidEmail):
            await manager.create_session(email)

    @pytest.mark.asyncio
    async def test_tokens_are_unique(self, manager: SessionManager):
        records = [await manager.create_session(TEST_EMAIL) for _ in range(25)]
        assert len({r.session_token for r in records}) == 25

    @pytest.mark.asyncio
    async def test_new_session_polls_pending(self, manager: SessionManager):
        record = await manager.create_session(TEST_EMAIL)
        assert await manager.poll_session(record.session_token) is SessionStatus.PENDING


def test_normalize_email():
    assert normalize_email(" USER@Example.com") == "user@example.com"
    with pytest.raises(InvalidEmail):
        normalize_email("user at example.com")


class TestAuthenticateSession:
    @pytest.mark.asyncio
    async def test_first_call_authenticates(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        await manager.authenticate_session(pending_session.session_token, TEST_EMAIL)

        record = await manager.get_session(pending_session.session_token)
        assert record is not None
        assert record.is_authenticated is True
        assert record.authenticated_at is not None
        assert await manager.poll_session(record.session_token) is SessionStatus.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_second_call_does_not_touch_authenticated_at(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)
        first = await manager.get_session(token)
        assert first is not None
        authenticated_at = ensure_utc(first.authenticated_at)  # type: ignore[arg-type]

        fake_clock.advance(seconds=30)
        with pytest.raises(SessionAlreadyAuthenticated):
            await manager.authenticate_session(token, TEST_EMAIL)

        second = await manager.get_session(token)
        assert second is not None
        assert ensure_utc(second.authenticated_at) == authenticated_at  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_unknown_token(self, manager: SessionManager):
        with pytest.raises(SessionNotFound):
            await manager.authenticate_session("no-such-token", TEST_EMAIL)

    @pytest.mark.asyncio
    async def test_other_address_cannot_confirm(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        with pytest.raises(ProviderVerificationFailed):
            await manager.authenticate_session(pending_session.session_token, "mallory@example.org")

        assert await manager.poll_session(pending_session.session_token) is SessionStatus.PENDING

    @pytest.mark.asyncio
    async def test_verified_address_is_normalized(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, f" {TEST_EMAIL.upper()}")

        assert await manager.poll_session(token) is SessionStatus.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_expired_session(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        fake_clock.advance(minutes=16)
        with pytest.raises(SessionExpired):
            await manager.authenticate_session(pending_session.session_token, TEST_EMAIL)

        record = await manager.get_session(pending_session.session_token)
        assert record is not None
        assert record.is_authenticated is False

    @pytest.mark.asyncio
    async def test_expires_exactly_at_deadline(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        fake_clock.advance(minutes=15)
        with pytest.raises(SessionExpired):
            await manager.authenticate_session(pending_session.session_token, TEST_EMAIL)

    @pytest.mark.asyncio
    async def test_concurrent_confirmations_have_one_winner(
        self,
        session_factory,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        """Two tabs opening the same link: only one observes the first transition."""
        token = pending_session.session_token

        async def confirm() -> str:
            async with session_factory() as session:
                try:
                    manager = SessionManager(session, clock=fake_clock)
                    await manager.authenticate_session(token, TEST_EMAIL)
                except SessionAlreadyAuthenticated:
                    return "already"
                return "first"

        results = await asyncio.gather(confirm(), confirm(), confirm())
        assert sorted(results) == ["already", "already", "first"]


class TestPollSession:
    @pytest.mark.asyncio
    async def test_unknown_token(self, manager: SessionManager):
        assert await manager.poll_session("no-such-token") is SessionStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_expiry_dominates_authentication(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)

        fake_clock.advance(minutes=15)
        assert await manager.poll_session(token) is SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_poll_does_not_mutate(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        token = pending_session.session_token
        fake_clock.advance(minutes=20)
        for _ in range(3):
            assert await manager.poll_session(token) is SessionStatus.EXPIRED

        record = await manager.get_session(token)
        assert record is not None
        assert record.is_authenticated is False


class TestConsumeSession:
    @pytest.mark.asyncio
    async def test_consume_confirmed_session(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)

        assert await manager.consume_session(token) == TEST_EMAIL
        assert await manager.poll_session(token) is SessionStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_consume_twice(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)
        await manager.consume_session(token)

        with pytest.raises(SessionNotFound):
            await manager.consume_session(token)

    @pytest.mark.asyncio
    async def test_consume_pending_session(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        with pytest.raises(SessionNotAuthenticated):
            await manager.consume_session(pending_session.session_token)

        # Still usable afterwards
        assert (
            await manager.poll_session(pending_session.session_token) is SessionStatus.PENDING
        )

    @pytest.mark.asyncio
    async def test_consume_expired_session(
        self,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)
        fake_clock.advance(minutes=16)

        with pytest.raises(SessionExpired):
            await manager.consume_session(token)

    @pytest.mark.asyncio
    async def test_concurrent_consumers_have_one_winner(
        self,
        session_factory,
        manager: SessionManager,
        pending_session: PendingAuthSession,
        fake_clock: FakeClock,
    ):
        token = pending_session.session_token
        await manager.authenticate_session(token, TEST_EMAIL)

        async def consume() -> str | None:
            async with session_factory() as session:
                try:
                    return await SessionManager(session, clock=fake_clock).consume_session(token)
                except SessionNotFound:
                    return None

        results = await asyncio.gather(consume(), consume())
        assert results.count(TEST_EMAIL) == 1
        assert results.count(None) == 1


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_discard_session(
        self, manager: SessionManager, pending_session: PendingAuthSession
    ):
        await manager.discard_session(pending_session.session_token)
        assert (
            await manager.poll_session(pending_session.session_token) is SessionStatus.NOT_FOUND
        )

    @pytest.mark.asyncio
    async def test_sweep_expired(self, manager: SessionManager, fake_clock: FakeClock):
        old = await manager.create_session(TEST_EMAIL)
        fake_clock.advance(minutes=10)
        fresh = await manager.create_session(TEST_EMAIL)
        fake_clock.advance(minutes=6)

        assert await manager.sweep_expired() == 1
        assert await manager.poll_session(old.session_token) is SessionStatus.NOT_FOUND
        assert await manager.poll_session(fresh.session_token) is SessionStatus.PENDING


class TestTimelines:
    @pytest.mark.asyncio
    async def test_confirmed_then_expired(self, manager: SessionManager, fake_clock: FakeClock):
        record = await manager.create_session("user@example.com")
        token = record.session_token

        fake_clock.advance(minutes=1)
        await manager.authenticate_session(token, TEST_EMAIL)

        fake_clock.advance(seconds=1)
        assert await manager.poll_session(token) is SessionStatus.AUTHENTICATED

        fake_clock.advance(minutes=15)
        assert await manager.poll_session(token) is SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_never_confirmed(self, manager: SessionManager, fake_clock: FakeClock):
        record = await manager.create_session("user@example.com")

        fake_clock.advance(minutes=16)
        assert await manager.poll_session(record.session_token) is SessionStatus.EXPIRED
