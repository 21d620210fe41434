"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.amm_account.api.custody_router import router as custody_router
from src.amm_account.api.router import router as account_router
from src.amm_common.database import engine
from src.amm_common.errors import AppError
from src.amm_common.redis_client import close_redis, get_redis
from src.amm_common.response import error_response
from src.amm_dispute.api.router import router as dispute_router
from src.amm_gateway.middleware.rate_limit import RateLimitMiddleware
from src.amm_gateway.middleware.request_log import RequestLogMiddleware
from src.amm_ledger.api.router import router as trading_router
from src.amm_market.api.router import router as market_router
from src.amm_scheduler.expiry import ExpiryScheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

scheduler = ExpiryScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start the expiry scheduler. Shutdown: reverse."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    yield
    await scheduler.stop()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# Added last runs first: request log wraps the rate limiter
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(market_router, prefix="/api/v1")
app.include_router(trading_router, prefix="/api/v1")
app.include_router(dispute_router, prefix="/api/v1")
app.include_router(account_router, prefix="/api/v1")
app.include_router(custody_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
