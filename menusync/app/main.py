# main.py

"""FastAPI application serving the catalog and its realtime channel."""

from __future__ import annotations

import asyncio
import logging
import os
import time

from fastapi import FastAPI, HTTPException, Request, WebSocket, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import from_url
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings

from .catalog.normalize import SchemaNormalizer
from .catalog.state import StateCache
from .config.validate import validate_settings
from .db import create_engine, create_session_factory, init_models
from .errors import CatalogError
from .middlewares import LoggingMiddleware, RequestIdMiddleware, realtime_guard
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .realtime.hub import BroadcastHub
from .realtime.listener import ChangeListener
from .repos_sqlalchemy.catalog_repo_sql import CatalogRepoSQL
from .routes_health import router as health_router
from .routes_metrics import router as metrics_router
from .routes_state import router as state_router
from .routes_wallet import router as wallet_router
from .services.catalog_service import CatalogService
from .utils.responses import err, error_response

settings = get_settings()
validate_settings(settings)
app = FastAPI(
    title="Menu Sync API",
    version="1.0.0",
    servers=[{"url": "/"}],
    openapi_url="/openapi.json",
)
app.state.redis = None
app.add_middleware(RequestIdMiddleware)
app.add_middleware(LoggingMiddleware)

app.include_router(state_router)
app.include_router(wallet_router)
app.include_router(health_router)
app.include_router(metrics_router)


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
configure_logging(getattr(logging, LOG_LEVEL))
logger = logging.getLogger("api")
init_sentry(env=os.getenv("ENV"))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        exc.detail,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    return JSONResponse(err(exc.status_code, exc.detail), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "invalid_request", extra={"status": 400, "route": request.url.path}
    )
    return JSONResponse(
        err(
            "VALIDATION_ERROR",
            "invalid request body",
            {"errors": jsonable_encoder(exc.errors())},
        ),
        status_code=400,
    )


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    log_fn = logger.error if exc.status_code >= 500 else logger.warning
    log_fn(
        exc.message,
        extra={"status": exc.status_code, "route": request.url.path, "code": exc.code},
    )
    return error_response(exc)


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error",
        extra={"status": 500, "route": request.url.path},
    )
    capture_exception(exc)
    return JSONResponse(err(500, "Internal Server Error"), status_code=500)


@app.on_event("startup")
async def start_catalog() -> None:
    """Open the store, load the cache and start the background loops."""

    app.state.started_at = time.monotonic()
    engine = create_engine(settings.database_url)
    app.state.engine = engine
    try:
        await init_models(engine)
    except SQLAlchemyError as exc:
        logger.error("store_init_failed", extra={"error": str(exc)})

    app.state.owns_redis = app.state.redis is None
    if app.state.owns_redis:
        app.state.redis = from_url(settings.redis_url, decode_responses=True)
    redis_client = app.state.redis

    cache = StateCache()
    hub = BroadcastHub(
        cache,
        send_timeout=settings.ws_send_timeout_sec,
        heartbeat_interval=settings.ws_heartbeat_interval_sec,
        liveness_timeout=settings.ws_liveness_timeout_sec,
    )
    service = CatalogService(
        CatalogRepoSQL(create_session_factory(engine)),
        cache,
        hub,
        SchemaNormalizer.from_settings(settings),
        store_timeout=settings.store_timeout_secs,
        default_wallet=settings.default_wallet,
        task_credit_unit=settings.task_credit_unit,
        redis_client=redis_client if settings.publish_changes else None,
        change_channel=settings.change_channel,
    )
    app.state.cache = cache
    app.state.hub = hub
    app.state.catalog = service
    await service.load()

    listener = ChangeListener(
        redis_client, settings.change_channel, service.reload, origin=service.origin
    )
    app.state.background = [
        asyncio.create_task(listener.run()),
        asyncio.create_task(hub.run_heartbeat()),
    ]


@app.on_event("shutdown")
async def stop_catalog() -> None:
    for task in app.state.background:
        task.cancel()
    await asyncio.gather(*app.state.background, return_exceptions=True)
    await app.state.hub.close()
    await app.state.engine.dispose()
    if app.state.owns_redis:
        await app.state.redis.aclose()
        app.state.redis = None


@app.websocket("/ws")
async def catalog_ws(websocket: WebSocket) -> None:
    """Stream catalog snapshots: ``init`` once, then ``update`` per change."""

    ip = websocket.client.host if websocket.client else "?"
    try:
        realtime_guard.register(ip, settings.max_conn_per_ip)
    except HTTPException:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    hub: BroadcastHub = websocket.app.state.hub
    await websocket.accept()
    try:
        await hub.subscribe(websocket)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            hub.touch(websocket)
    finally:
        hub.unsubscribe(websocket)
        realtime_guard.unregister(ip)
