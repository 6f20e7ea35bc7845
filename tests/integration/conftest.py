"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.

Requires PostgreSQL with migrations applied (alembic upgrade head) and Redis.
Tokens are minted locally with the shared JWT_SECRET, the same way the
identity service signs them.
"""

import uuid
from collections.abc import Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.mk_gateway.auth.jwt_handler import create_access_token


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def new_user() -> Callable[..., dict[str, str]]:
    """Factory: a fresh user id per call, returned as auth headers."""

    def _make(prefix: str = "user", admin: bool = False) -> dict[str, str]:
        user_id = f"{prefix}_{uuid.uuid4().hex[:8]}"
        token = create_access_token(user_id, roles=["admin"] if admin else None)
        return {"Authorization": f"Bearer {token}"}

    return _make
