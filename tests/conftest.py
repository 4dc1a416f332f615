"""pytest fixtures shared across all tests."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from scimgate.core.clock import FrozenClock
from scimgate.core.config import SecurityConfig, Settings
from scimgate.models.base import Base
from scimgate.provisioning.plane import ControlPlane

# Shared fake admin claims used to bypass JWT auth in API tests
_FAKE_ADMIN = {"sub": "admin@test.local", "role": "admin"}


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    # A file database so background tasks and the test body can use separate connections
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        app_debug=True,
        jwt_secret_key="test-secret",
        token_hash_rounds=4,
        security=SecurityConfig(require_https=False),
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Create a fresh SQLite database per test function."""
    eng = create_async_engine(settings.database_url, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest_asyncio.fixture
async def plane(settings, session_factory, clock):
    """A fully wired ControlPlane on the test database and a frozen clock."""
    cp = ControlPlane.build(settings, session_factory, clock=clock)
    yield cp
    await cp.aclose()


@pytest_asyncio.fixture
async def client(plane):
    """HTTPX async test client wired to the FastAPI app and the test ControlPlane."""
    from scimgate.api.app import create_app
    from scimgate.api.dependencies import get_control_plane, require_admin

    app = create_app()

    async def override_admin():
        return _FAKE_ADMIN

    app.dependency_overrides[get_control_plane] = lambda: plane
    app.dependency_overrides[require_admin] = override_admin

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def idp_app(plane):
    """App without the admin override, for the token-authenticated routes."""
    from scimgate.api.app import create_app
    from scimgate.api.dependencies import get_control_plane

    app = create_app()
    app.dependency_overrides[get_control_plane] = lambda: plane
    return app


@pytest_asyncio.fixture
async def idp_client(idp_app):
    # httpx reports the ASGI client address as 127.0.0.1
    async with AsyncClient(
        transport=ASGITransport(app=idp_app), base_url="http://test"
    ) as ac:
        yield ac
