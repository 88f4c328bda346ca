from __future__ import annotations

import asyncio
import logging
import time
import tracemalloc
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from cinescan.api.admin import router as admin_router
from cinescan.api.auth import router as auth_router
from cinescan.api.files import router as files_router
from cinescan.api.movie_requests import router as movie_requests_router
from cinescan.api.movies import router as movies_router
from cinescan.api.registrations import router as registrations_router
from cinescan.api.reviews import router as reviews_router
from cinescan.api.subtitles import router as subtitles_router
from cinescan.auth.security import reset_in_memory_auth_state
from cinescan.core import config
from cinescan.core.database import check_database, init_db, is_db_enabled, shutdown_db, start_db
from cinescan.core.errors import register_exception_handlers
from cinescan.core.metrics import metrics
from cinescan.core.state import get_indexer, get_watcher, reset_library_state
from cinescan.core.time_utils import isoformat_utc, utc_now

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

# Memory tracing for the health endpoint
tracemalloc.start()


async def _initial_index() -> None:
    try:
        summary = await get_indexer().index_all()
        logger.info("startup_index_complete", extra={"indexed": summary.indexed, "failed": summary.failed})
    except Exception:
        logger.exception("startup_index_failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, then start the folder watcher; tear down in reverse order."""
    await start_db()
    if config.get_dev_create_all() and is_db_enabled():
        await init_db()
    # Fresh per-process state (tokens, rate limits, watcher) on every startup
    reset_in_memory_auth_state()
    reset_library_state()

    loop = asyncio.get_running_loop()
    watcher = get_watcher()
    watcher.set_loop(loop)
    logger.info(
        "startup_config",
        extra={
            "ENABLE_DB": bool(config.get_enable_db()),
            "DEV_CREATE_ALL": bool(config.get_dev_create_all()),
            "movies_folder": str(watcher.path),
            "watcher_enabled": bool(config.get_watcher_enabled()),
            "tmdb_configured": bool(config.get_tmdb_api_key()),
            "smtp_configured": bool(config.get_smtp_host()),
        },
    )

    index_task = None
    if config.get_watcher_enabled():
        if watcher.path.is_dir():
            watcher.start()
            if config.WATCHER_INDEX_ON_START:
                index_task = asyncio.create_task(_initial_index())
        else:
            logger.warning("watcher_not_started missing_folder=%s", watcher.path)
    try:
        yield
    finally:
        if index_task is not None and not index_task.done():
            index_task.cancel()
        reset_library_state()
        await shutdown_db()


app = FastAPI(title="CineScan API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=config.CORS_ALLOW_CREDENTIALS,
    allow_methods=config.CORS_ALLOW_METHODS,
    allow_headers=config.CORS_ALLOW_HEADERS,
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(movies_router)
app.include_router(reviews_router)
app.include_router(movie_requests_router)
app.include_router(registrations_router)
app.include_router(admin_router)
app.include_router(subtitles_router)
app.include_router(files_router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration = time.perf_counter() - start
        route_obj = request.scope.get("route")
        route_path = getattr(route_obj, "path", request.url.path)
        status = getattr(response, "status_code", 500)
        metrics.record_http(request.method, route_path, status, duration)


@app.get("/metrics")
async def get_metrics():
    return metrics.snapshot()


@app.get("/")
async def root():
    """Simple health banner indicating server readiness."""
    return {"message": "CineScan API", "status": "running"}


@app.get("/api/health")
async def api_health():
    return {"status": "OK", "timestamp": isoformat_utc(utc_now())}


@app.get("/healthz")
async def healthz():
    """Health check with database, watcher and memory figures."""
    current, peak = tracemalloc.get_traced_memory() if tracemalloc.is_tracing() else (0, 0)
    db_ok = await check_database()
    return {
        "status": "ok",
        "database": {"enabled": is_db_enabled(), "status": "ok" if db_ok else "fail"},
        "watcher": get_watcher().stats(),
        "memory": {"current_bytes": current, "peak_bytes": peak},
        "uptime_s": round(metrics.uptime_s(), 3),
        "server_time": isoformat_utc(utc_now()),
    }


@app.get("/healthz/db")
async def healthz_db():
    """Database health probe endpoint.

    Returns:
        JSON with database.enabled and database.status (ok|fail).
    """
    enabled = is_db_enabled()
    ok = await check_database() if enabled else False
    return {
        "database": {
            "enabled": bool(enabled),
            "status": "ok" if ok else "fail",
        }
    }
