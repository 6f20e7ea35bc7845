"""Store timeout, retry/backoff and driver error translation."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DBAPIError

from src.mk_common.errors import ConflictError, InternalError, StoreTimeoutError
from src.mk_common.retry import run_with_retry, translate_db_errors, with_store_timeout


class _DriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _dbapi_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE wallet_accounts ...", {}, _DriverError(sqlstate))


class TestRunWithRetry:
    async def test_retries_conflict_then_succeeds(self) -> None:
        func = AsyncMock(side_effect=[ConflictError("race"), "ok"])
        result = await run_with_retry(func, operation="test", backoff_base=0)
        assert result == "ok"
        assert func.await_count == 2

    async def test_non_retryable_raises_immediately(self) -> None:
        func = AsyncMock(side_effect=InternalError("broken"))
        with pytest.raises(InternalError):
            await run_with_retry(func, operation="test", backoff_base=0)
        assert func.await_count == 1

    async def test_gives_up_after_attempts(self) -> None:
        func = AsyncMock(side_effect=StoreTimeoutError("settle", 5))
        with pytest.raises(StoreTimeoutError):
            await run_with_retry(func, operation="test", attempts=3, backoff_base=0)
        assert func.await_count == 3

    async def test_backoff_doubles(self, monkeypatch: pytest.MonkeyPatch) -> None:
        delays: list[float] = []

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)

        monkeypatch.setattr("src.mk_common.retry.asyncio.sleep", fake_sleep)
        func = AsyncMock(side_effect=[ConflictError("a"), ConflictError("b"), "ok"])
        await run_with_retry(func, operation="test", attempts=3, backoff_base=0.1)
        assert delays == pytest.approx([0.1, 0.2])


class TestStoreTimeout:
    async def test_slow_call_times_out(self) -> None:
        with pytest.raises(StoreTimeoutError) as exc_info:
            await with_store_timeout(asyncio.sleep(1), "slow_query", seconds=0.01)
        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 503

    async def test_fast_call_returns_value(self) -> None:
        async def answer() -> int:
            return 42

        assert await with_store_timeout(answer(), "fast_query", seconds=1) == 42


class TestTranslateDbErrors:
    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    async def test_retryable_states_become_conflict(self, sqlstate: str) -> None:
        with pytest.raises(ConflictError):
            async with translate_db_errors("debit"):
                raise _dbapi_error(sqlstate)

    async def test_other_driver_errors_pass_through(self) -> None:
        with pytest.raises(DBAPIError):
            async with translate_db_errors("debit"):
                raise _dbapi_error("23505")
