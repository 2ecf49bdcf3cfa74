"""Global test configuration and fixtures for CreditGate API."""

import os

# Settings are read at import time by several modules
os.environ["DATABASE_URL"] = "sqlite:///./.pytest-creditgate.db"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["REDIS_CACHE_ENABLED"] = "false"
os.environ["DATABASE_AUTO_CREATE"] = "false"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from asgi_lifespan import LifespanManager  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.api.core.constants import ADMIN_TOKEN_HEADER  # noqa: E402
from src.api.core.dependencies import get_settlement_backend  # noqa: E402
from src.database.models import Base  # noqa: E402
from src.modules.proxies.cache import proxy_lookup_cache  # noqa: E402
from src.modules.proxies.pool import ProxyPoolService  # noqa: E402
from tests.utils.settlement import FakeSettlementBackend  # noqa: E402
from tests.utils.upstream import UpstreamRecorder  # noqa: E402

ADMIN_TOKEN = os.environ["ADMIN_API_TOKEN"]


@pytest.fixture(autouse=True)
def clear_proxy_cache():
    """The lookup cache is process-wide; start every test empty."""
    proxy_lookup_cache.clear()
    yield
    proxy_lookup_cache.clear()


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """File-backed SQLite database per test so separate sessions can race."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'creditgate.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settlement() -> FakeSettlementBackend:
    return FakeSettlementBackend()


@pytest_asyncio.fixture
async def app(session_factory, settlement):
    """Create FastAPI application with lifespan manager for testing."""
    from src.main import app

    app.state.session_factory = session_factory
    app.dependency_overrides[get_settlement_backend] = lambda: settlement
    async with LifespanManager(app):
        yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def public_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client without credentials."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test-creditgate-api",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client carrying the admin token."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test-creditgate-api",
        headers={ADMIN_TOKEN_HEADER: ADMIN_TOKEN},
    ) as ac:
        yield ac


@pytest.fixture
def upstream(monkeypatch) -> UpstreamRecorder:
    """Intercept every upstream HTTP call made through the proxy pool."""
    recorder = UpstreamRecorder()

    async def dispatch(self, method, url, headers, json, timeout, transport=None):
        return await recorder(self, method, url, headers, json, timeout, transport)

    monkeypatch.setattr(ProxyPoolService, "dispatch", dispatch)
    return recorder
