"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.mk_admin.api.router import router as admin_router
from src.mk_common.database import engine
from src.mk_common.errors import AppError, ErrorKind, InternalError, ValidationError
from src.mk_common.redis_client import check_redis, close_redis
from src.mk_common.response import error_response
from src.mk_escrow.api.router import router as trade_router
from src.mk_gateway.middleware.rate_limit import RateLimitMiddleware
from src.mk_gateway.middleware.request_log import RequestLogMiddleware
from src.mk_listing.api.router import router as listing_router
from src.mk_order.api.router import router as order_router
from src.mk_ranking.api.router import router as ranking_router
from src.mk_settlement.application.recovery import run_settlement_sweeper
from src.mk_settlement.application.service import SettlementCoordinator
from src.mk_wallet.api.router import router as wallet_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start the settlement sweeper. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await check_redis()
    sweeper: asyncio.Task[None] | None = None
    if settings.SETTLEMENT_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(
            run_settlement_sweeper(
                SettlementCoordinator(), settings.SETTLEMENT_SWEEP_INTERVAL_SECONDS
            )
        )
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# Added last = outermost: every request, throttled or not, is logged
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLogMiddleware)


def _error_json(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, exc.kind.value, exc.retryable)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(status_code=exc.http_status, content=resp.model_dump())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.kind is ErrorKind.INTERNAL:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_json(request, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = f"{field}: {first.get('msg', 'invalid')}" if field else "malformed request"
    return _error_json(request, ValidationError(detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_json(request, InternalError())


app.include_router(listing_router, prefix="/api/v1")
app.include_router(order_router, prefix="/api/v1")
app.include_router(trade_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(ranking_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
