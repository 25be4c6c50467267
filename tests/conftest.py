"""
Pytest configuration and fixtures for the Gatekeeper security core tests.

This module provides:
- Settings with cheap PBKDF2 parameters and a per-test SQLite database
- A controllable clock shared by every component
- A notifier that records what it was asked to send
- A fully wired container and an HTTP client over the API
- User, role and permission fixtures
"""

import re
import statistics
import time
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gatekeeper.api.app import create_app
from gatekeeper.core.config import Settings
from gatekeeper.domain.entities.user import User
from gatekeeper.infrastructure.cache import MemoryCache
from gatekeeper.infrastructure.container import Container

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_PASSWORD = "Str0ng!Pass"


# ============================================================================
# Time and collaborators
# ============================================================================
class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def monotonic(self) -> float:
        return self.now.timestamp()


class RecordingNotifier:
    """Notification sender that keeps every message in memory."""

    def __init__(self) -> None:
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []

    async def send_email(self, destination: str, subject: str, body: str) -> None:
        self.emails.append((destination, subject, body))

    async def send_sms(self, destination: str, message: str) -> None:
        self.sms.append((destination, message))

    def last_code(self) -> str:
        """Extract the most recent delivered one-time code."""
        messages = [body for _, _, body in self.emails] + [message for _, message in self.sms]
        for message in reversed(messages):
            match = re.search(r"code is (\d+)", message)
            if match:
                return match.group(1)
        raise AssertionError("no verification code was sent")

    @property
    def subjects(self) -> list[str]:
        return [subject for _, subject, _ in self.emails]


class StubQrRenderer:
    def render_png(self, data: str) -> bytes:
        return b"\x89PNG" + data.encode("utf-8")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """
    Settings for tests.

    PBKDF2 runs with the minimum iteration count so hashing stays fast.
    """
    return Settings(
        jwt_secret_key=TEST_SECRET_KEY,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'gatekeeper.db'}",
        redis_url=None,
        pbkdf2_iterations=1_000,
        cache_retry_backoff_ms=0,
    )


# ============================================================================
# Container and API
# ============================================================================
@pytest_asyncio.fixture
async def container(settings, clock, notifier) -> AsyncGenerator[Container, None]:
    """Wired security core over a fresh SQLite database."""
    cache = MemoryCache(monotonic=clock.monotonic)
    container = Container.build(
        settings,
        clock=clock,
        cache=cache,
        notifier=notifier,
        qr_renderer=StubQrRenderer(),
    )
    await container.startup(create_tables=True)
    yield container
    await container.shutdown()


@pytest_asyncio.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client over the FastAPI app.

    ASGITransport does not run the lifespan; the container fixture has
    already started the core.
    """
    app = create_app(container=container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Data fixtures
# ============================================================================
@pytest_asyncio.fixture
async def default_role(container):
    """The role every new user receives."""
    return await container.rbac_service.create_role(
        container.settings.default_role_name, description="Default role", is_system=True
    )


@pytest_asyncio.fixture
async def alice(container, default_role) -> User:
    return await container.auth_service.register("alice", "alice@example.com", TEST_PASSWORD)


@pytest_asyncio.fixture
async def admin_user(container, default_role) -> User:
    """User holding a role with every administrative permission."""
    rbac = container.rbac_service
    admin_role = await rbac.create_role("Admin", is_system=True)
    permission_ids = []
    for name in ("roles:read", "roles:manage", "users:manage"):
        permission = await rbac.create_permission(name)
        permission_ids.append(permission.id)
    await rbac.assign_permissions_to_role(admin_role.id, permission_ids)

    user = await container.auth_service.register("admin", "admin@example.com", TEST_PASSWORD)
    await rbac.assign_role(user.id, admin_role.id)
    return user


@pytest.fixture
def login_tokens(container: Container):
    """Log in and return the token pair, failing the test otherwise."""

    async def _login(identifier: str, password: str = TEST_PASSWORD, ip_address: str = "10.0.0.1"):
        result = await container.auth_service.login(identifier, password, ip_address=ip_address)
        assert result.succeeded, result
        return result.tokens

    return _login


# ============================================================================
# Mocks
# ============================================================================
@pytest.fixture
def mock_uow():
    """
    Unit of work mock with every repository as an AsyncMock.

    ``uow_factory`` returns the same mock so a service under test sees the
    repositories configured by the test.
    """
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=None)
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()
    for name in (
        "users",
        "roles",
        "permissions",
        "role_permissions",
        "user_roles",
        "refresh_tokens",
        "recovery_codes",
        "login_attempts",
    ):
        setattr(uow, name, AsyncMock())
    return uow


@pytest.fixture
def mock_uow_factory(mock_uow):
    return MagicMock(return_value=mock_uow)


# ============================================================================
# Timing
# ============================================================================
@pytest.fixture
def median_latencies():
    """
    Median wall time of two callables, in nanoseconds.

    Batches of each callable run alternately so drift in machine load
    affects both samples alike.
    """

    def _measure(first, second, rounds: int = 101, batch: int = 10) -> tuple[float, float]:
        samples: tuple[list[int], list[int]] = ([], [])
        for _ in range(rounds):
            for fn, bucket in ((first, samples[0]), (second, samples[1])):
                start = time.perf_counter_ns()
                for _ in range(batch):
                    fn()
                bucket.append(time.perf_counter_ns() - start)
        return statistics.median(samples[0]), statistics.median(samples[1])

    return _measure
