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
from src.mk_cart.api.favorites_router import router as favorites_router
from src.mk_cart.api.router import router as cart_router
from src.mk_common.database import engine
from src.mk_common.errors import AppError
from src.mk_common.redis_client import close_redis, get_redis
from src.mk_common.response import error_response
from src.mk_dashboard.api.router import router as dashboard_router
from src.mk_gateway.middleware.request_log import RequestLogMiddleware
from src.mk_messaging.api.router import router as messaging_router
from src.mk_order.api.router import router as order_router
from src.mk_realtime.api.router import router as realtime_router
from src.mk_realtime.feed.factory import get_change_feed, reset_change_feed

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections, open the change feed. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    if settings.CHANGE_FEED_BACKEND == "redis":
        await get_redis()
    await get_change_feed()
    yield
    # Shutdown
    reset_change_feed()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, exc.data)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        resp.request_id = request_id
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(messaging_router, prefix="/api/v1")
app.include_router(order_router, prefix="/api/v1")
app.include_router(cart_router, prefix="/api/v1")
app.include_router(favorites_router, prefix="/api/v1")
app.include_router(dashboard_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
