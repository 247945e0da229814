"""
MCT API — Test Configuration (conftest.py)
============================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Tests run without PostgreSQL or Redis: the HTTP client drives the app
       through ASGITransport (no lifespan, so no pools are opened) and pool
       tests use fakes or unreachable addresses.

Fixtures:
    test_settings: Settings with deterministic values (no .env influence)
    app:           Fresh FastAPI instance built by create_app(test_settings)
    test_client:   HTTPX AsyncClient bound to ``app``
    fake_pools:    ResourcePools stand-in with controllable health
"""

import os
from typing import Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep the developer's .env and shell from leaking into settings
os.environ["ENV"] = "test"
os.environ["SERVICE_NAME"] = "mct-api"

from mct_api.config import DEFAULT_CORS_ORIGINS, Settings  # noqa: E402
from mct_api.main import create_app  # noqa: E402


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        service_name="mct-api",
        env="test",
        cors_allowed_origins=DEFAULT_CORS_ORIGINS,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient configured to talk to the FastAPI app in-process.

    Usage:
        async def test_ping(test_client):
            response = await test_client.get("/api/v1/ping")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class FakePools:
    """Duck-typed ResourcePools whose health is set by the test."""

    def __init__(self, status: Dict[str, str]):
        self.status = status
        self.engine = MagicMock()
        self.cache = MagicMock()
        self.session_factory = MagicMock()

    async def health_check(self) -> Dict[str, str]:
        return dict(self.status)

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_pools():
    return FakePools({"database": "connected", "cache": "connected"})


@pytest.fixture
def mock_engine():
    """An AsyncEngine stand-in whose dispose() can be asserted."""
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return engine


@pytest.fixture
def mock_cache():
    """A redis.asyncio.Redis stand-in with an awaitable ping/aclose."""
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    client.connection_pool.disconnect = AsyncMock()
    return client
