from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from app.api.error_handlers import register_error_handlers
from app.api.router import api_router
from app.core.config import get_settings
from app.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from app.services.background import DetachedTasks
from app.services.lifecycle import AdvertLifecycle
from app.services.object_store import LocalObjectStore
from app.services.repository import build_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    # One instance of each collaborator per process, reached through app.state.
    app.state.repository = build_repository(settings)
    app.state.object_store = LocalObjectStore(settings.object_store_root)
    app.state.lifecycle = AdvertLifecycle(settings.advert_statuses)
    app.state.detached_tasks = DetachedTasks()
    logger.info("advert catalog started backend=%s", settings.storage_backend)
    try:
        yield
    finally:
        await app.state.detached_tasks.drain()
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await app.state.repository.close()


configure_api_logging(settings)
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)
register_error_handlers(app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
