"""Bounded store access: per-call timeout and retry with exponential backoff.

CONFLICT and TIMEOUT errors are the only retryable kinds. Driver-level
serialization failures and deadlocks are translated to ConflictError so
callers only ever see typed errors.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.exc import DBAPIError

from config.settings import settings
from src.mk_common.errors import AppError, ConflictError, StoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@asynccontextmanager
async def translate_db_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise retryable driver errors as ConflictError."""
    try:
        yield
    except DBAPIError as exc:
        if _sqlstate(exc) in _RETRYABLE_SQLSTATES:
            raise ConflictError(f"{operation} lost a concurrent update race") from exc
        raise


async def with_store_timeout(
    awaitable: Awaitable[T], operation: str, seconds: float | None = None
) -> T:
    """Await `awaitable`, raising StoreTimeoutError after the configured bound."""
    limit = settings.STORE_TIMEOUT_SECONDS if seconds is None else seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except TimeoutError:
        logger.warning("Store timeout after %.1fs during %s", limit, operation)
        raise StoreTimeoutError(operation, limit) from None


async def run_with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    operation: str,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> T:
    """Call `func` until it succeeds, retrying retryable AppErrors.

    Delay before retry n (0-based) is backoff_base * 2**n. Non-retryable
    errors and the last retryable error propagate unchanged.
    """
    max_attempts = attempts or settings.RETRY_ATTEMPTS
    base = settings.RETRY_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
    attempt = 0
    while True:
        try:
            return await func()
        except AppError as exc:
            attempt += 1
            if not exc.retryable or attempt >= max_attempts:
                raise
            delay = base * (2 ** (attempt - 1))
            logger.warning(
                "%s failed with %s (attempt %d/%d), retrying in %.2fs",
                operation, exc.kind.value, attempt, max_attempts, delay,
            )
            await asyncio.sleep(delay)
