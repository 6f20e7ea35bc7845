"""HTTP surface: envelopes, auth and error mapping with the services mocked."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from config.settings import settings
from src.mk_common.database import get_db_session
from src.mk_common.errors import ConflictError, OrderNotFoundError
from src.mk_gateway.auth.jwt_handler import create_access_token
from src.mk_wallet.application.schemas import BalanceResponse
from tests.fakes import FakeSession


def _auth(user_id: str = "bob", roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, roles)}"}


@pytest.fixture(autouse=True)
def _isolated_app(monkeypatch: pytest.MonkeyPatch):
    from src.main import app

    async def fake_db():
        yield FakeSession()

    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    app.dependency_overrides[get_db_session] = fake_db
    yield
    app.dependency_overrides.clear()


class TestEnvelope:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_missing_token_is_401(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/wallet/balance")
        assert resp.status_code == 401

    async def test_success_envelope_carries_request_id(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ledger = MagicMock()
        ledger.get_balance = AsyncMock(return_value=BalanceResponse(user_id="bob", balance=70))
        monkeypatch.setattr("src.mk_wallet.api.router._ledger", ledger)

        resp = await client.get("/api/v1/wallet/balance", headers=_auth())

        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == 0
        assert body["data"] == {"user_id": "bob", "balance": 70}
        assert body["request_id"] == resp.headers["X-Request-ID"]
        # the user id comes from the token, never the request
        assert ledger.get_balance.await_args.args[1] == "bob"

    async def test_app_error_mapped_to_status_and_kind(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine = MagicMock()
        engine.get_order = AsyncMock(side_effect=OrderNotFoundError("123"))
        monkeypatch.setattr("src.mk_order.api.router._engine", engine)

        resp = await client.get("/api/v1/orders/123", headers=_auth())

        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == 4004
        assert body["error_kind"] == "NOT_FOUND"
        assert body["data"] is None
        assert body["request_id"] == resp.headers["X-Request-ID"]

    async def test_conflict_is_retryable(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine = MagicMock()
        engine.confirm_order = AsyncMock(side_effect=ConflictError("lost race"))
        monkeypatch.setattr("src.mk_order.api.router._engine", engine)

        resp = await client.post("/api/v1/orders/123/confirm", json={}, headers=_auth("alice"))

        assert resp.status_code == 409
        assert resp.json()["retryable"] is True

    async def test_request_validation_uses_envelope(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/orders", json={"listing_id": "L1", "quantity": 0}, headers=_auth()
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == 9003
        assert body["error_kind"] == "VALIDATION"
        assert "quantity" in body["message"]

    async def test_listing_expiry_without_timezone_is_rejected(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/listings",
            json={"title": "Sword", "unit_price": 100, "quantity": 1,
                  "expires_at": "2030-01-01T00:00:00"},
            headers=_auth(),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 9003
        assert "expires_at" in resp.json()["message"]

    async def test_well_formed_request_id_is_echoed(self, client: AsyncClient) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "trace-0042-abcd"})
        assert resp.headers["X-Request-ID"] == "trace-0042-abcd"

    async def test_malformed_request_id_is_replaced(self, client: AsyncClient) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "bad id!"})
        assert resp.headers["X-Request-ID"].startswith("req_")


class TestAdminRoutes:
    async def test_non_admin_forbidden(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/admin/invariants", headers=_auth("bob"))
        assert resp.status_code == 403
        assert resp.json()["code"] == 6001

    async def test_admin_allowed(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = MagicMock()
        service.verify_invariants = AsyncMock(return_value={"ok": True, "violations": []})
        monkeypatch.setattr("src.mk_admin.api.router._service", service)

        resp = await client.get("/api/v1/admin/invariants", headers=_auth("root", ["admin"]))

        assert resp.status_code == 200
        assert resp.json()["data"] == {"ok": True, "violations": []}
