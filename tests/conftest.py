"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from imaginghub.api.deps import get_clock
from imaginghub.database import get_session
from imaginghub.main import app
from imaginghub.models import PendingAuthSession, UserSession
from imaginghub.services.access import EmailPolicy, get_email_policy
from imaginghub.services.auth import issue_session
from imaginghub.services.clock import FakeClock
from imaginghub.services.handshake import SessionManager
from imaginghub.services.identity import LocalIdentityProvider, get_identity_provider
from imaginghub.services.rate_limit import get_rate_limiter

TEST_EMAIL = "researcher@example.edu"


@pytest.fixture(autouse=True)
def mock_queue():
    """Mock the SAQ queue to avoid Redis connections in tests."""
    mock_job = MagicMock()
    mock_job.id = "test-job-id"
    mock_job.key = "test-job-key"

    with patch("imaginghub.tasks.queue.queue.enqueue", new_callable=AsyncMock) as mock_enqueue:
        mock_enqueue.return_value = mock_job
        yield mock_enqueue


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
async def test_engine(tmp_path):
    """A fresh SQLite database file per test.

    Every session gets its own connection, so concurrent sessions really
    race against each other.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(session: AsyncSession, fake_clock: FakeClock) -> SessionManager:
    return SessionManager(session, clock=fake_clock)


@pytest.fixture
def email_service_mock() -> MagicMock:
    """Email service whose deliveries are recorded instead of sent."""
    service = MagicMock()
    service.send_magic_link = AsyncMock(return_value=True)
    return service


@pytest.fixture
def identity_provider(email_service_mock: MagicMock) -> LocalIdentityProvider:
    return LocalIdentityProvider(emails=email_service_mock)


@pytest.fixture
def email_policy() -> EmailPolicy:
    return EmailPolicy(allowed_domains=[])


@pytest.fixture
async def client(
    session_factory,
    fake_clock: FakeClock,
    identity_provider: LocalIdentityProvider,
    email_policy: EmailPolicy,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client.

    Each request gets its own database session, as in production.
    """

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: fake_clock
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_email_policy] = lambda: email_policy

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def sent_magic_link(email_service_mock: MagicMock) -> str:
    """The magic link from the most recent email."""
    return email_service_mock.send_magic_link.call_args.kwargs["magic_link"]


@pytest.fixture
async def pending_session(manager: SessionManager) -> PendingAuthSession:
    return await manager.create_session(TEST_EMAIL, device_info="Firefox on Linux")


@pytest.fixture
async def device_session(
    session: AsyncSession, fake_clock: FakeClock
) -> tuple[str, UserSession]:
    """An issued access token and its device session."""
    return await issue_session(
        session,
        TEST_EMAIL,
        user_agent="Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0",
        ip_address="10.0.0.1",
        clock=fake_clock,
    )


@pytest.fixture
def auth_headers(device_session: tuple[str, UserSession]) -> dict[str, str]:
    token, _ = device_session
    return {"Authorization": f"Bearer {token}"}


# Helper to make authenticated requests
class AuthenticatedClient:
    """Wrapper for AsyncClient with authentication."""

    def __init__(self, client: AsyncClient, headers: dict[str, str]):
        self.client = client
        self.headers = headers

    async def get(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.get(url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.post(url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.delete(url, **kwargs)


@pytest.fixture
def authenticated_client(client: AsyncClient, auth_headers: dict[str, str]) -> AuthenticatedClient:
    """Create an authenticated test client."""
    return AuthenticatedClient(client, auth_headers)
