"""Rate limiting middleware for write requests.

Fixed-window counting with Redis INCR + EXPIRE:
  - Only POST/PUT/PATCH/DELETE are counted; reads are never limited
  - Key pattern: "ratelimit:w:{user_id_or_ip}:{window}"
  - Exceeded → 429 with the RateLimitError envelope and a Retry-After header

Redis holds nothing but these counters. If Redis is unreachable the request
is let through and a warning is logged.
"""

import logging
import time
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from config.settings import settings
from src.mk_common.errors import InvalidCredentialsError, RateLimitError
from src.mk_common.redis_client import get_redis
from src.mk_common.response import error_response
from src.mk_gateway.auth.jwt_handler import decode_token

logger = logging.getLogger(__name__)

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_WINDOW_SECONDS = 60


def _client_key(request: Request) -> str:
    """Verified user id when a valid token is present, else the client IP."""
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        try:
            sub = decode_token(auth[7:]).get("sub")
            if sub:
                return f"u:{sub}"
        except InvalidCredentialsError:
            pass  # unauthenticated requests are limited per IP; the router rejects them
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
        limit: int | None = None,
    ) -> None:
        super().__init__(app)
        self._redis_factory = redis_factory
        self._limit = limit or settings.RATE_LIMIT_WRITES_PER_MINUTE

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.RATE_LIMIT_ENABLED or request.method not in _WRITE_METHODS:
            return await call_next(request)

        window = int(time.time()) // _WINDOW_SECONDS
        key = f"ratelimit:w:{_client_key(request)}:{window}"
        try:
            redis = await self._redis_factory()
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, _WINDOW_SECONDS)
        except RedisError as exc:
            logger.warning("Rate limiter unavailable, allowing request: %s", exc)
            return await call_next(request)

        if count > self._limit:
            err = RateLimitError()
            body = error_response(err.code, err.message, err.kind.value, err.retryable)
            retry_after = _WINDOW_SECONDS - int(time.time()) % _WINDOW_SECONDS
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, count, self._limit)
            return JSONResponse(
                status_code=err.http_status,
                content=body.model_dump(),
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
