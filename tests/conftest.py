"""Shared test fixtures."""

# ruff: noqa: E402  -- JWT_SECRET must be in the environment before settings load

import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests")

import pytest
from httpx import ASGITransport, AsyncClient

from tests.fakes import FakeSession, Market, build_market


@pytest.fixture
def market() -> Market:
    return build_market()


@pytest.fixture
def db() -> FakeSession:
    return FakeSession()


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    from src.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
