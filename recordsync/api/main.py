"""
Replication API - the server side of the sync protocol.

Endpoints:
    GET  /api/health                  liveness probe used by client connectivity checks
    GET  /api/sync/pull?userKey=...   reconciled dataset for a user
    POST /api/sync/push?userKey=...   merge a local dataset into the stored one
    GET  /api/stats                   per-user versions and collection sizes
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .schemas import ErrorResponse, HealthResponse, PushResponse, StatsResponse, UserStats
from ..core import dao, heartbeat, replication
from ..core.config import (
    VERSION,
    debug_enabled,
    get_cors_origins,
    get_retention_schedule,
    get_retention_startup_delay,
    get_seed_user_keys,
    is_retention_enabled,
    validate_retention_config,
)
from ..core.db import health_check, init_db
from ..core.errors import PersistenceError, ValidationError
from ..core.retention import run_retention_sweep
from ..util.logging import logger

RETENTION_TASK = "retention_sweep"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing userKey or malformed dataset"},
    503: {"model": ErrorResponse, "description": "Storage unavailable"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare storage and schedule the retention sweeper."""
    init_db()

    created = dao.seed_user_keys(get_seed_user_keys())
    if created:
        logger.info(f"Seeded default datasets for: {created}")

    scheduled = False
    if is_retention_enabled():
        issues = validate_retention_config()
        if issues:
            raise ValueError(f"Retention configuration invalid: {issues}")

        heartbeat.register_task(
            RETENTION_TASK,
            get_retention_schedule(),
            run_retention_sweep,
            initial_delay_sec=get_retention_startup_delay()
        )
        heartbeat.start_background()
        scheduled = True
    else:
        logger.info("Retention sweeper disabled (RETENTION_ENABLED=false)")

    yield

    if scheduled:
        heartbeat.stop()
        heartbeat.unregister_task(RETENTION_TASK)


# Initialize the FastAPI application
app = FastAPI(
    title="recordsync",
    version=VERSION,
    description="Replication server: last-write-wins merge of per-user business datasets",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.monotonic()
    response = await call_next(request)
    duration_ms = round((time.monotonic() - start) * 1000, 2)
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)")
    return response


def _error_response(status_code: int, message: str, exc: Any = None) -> JSONResponse:
    content = {"detail": message}
    if exc is not None and debug_enabled():
        content["debug"] = exc if isinstance(exc, (list, dict)) else str(exc)
    return JSONResponse(status_code=status_code, content=content)


@app.get("/api/health", response_model=HealthResponse)
def health_endpoint():
    """Liveness probe."""
    db_health = health_check()
    return HealthResponse(
        status="ok" if db_health else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=VERSION,
        db_health=db_health
    )


@app.get("/api/sync/pull", responses=ERROR_RESPONSES)
def pull_endpoint(user_key: Optional[str] = Query(None, alias="userKey")):
    """Return the stored dataset for a user, creating an empty one if needed."""
    return replication.pull(user_key)


@app.post("/api/sync/push", response_model=PushResponse, responses=ERROR_RESPONSES)
def push_endpoint(
    user_key: Optional[str] = Query(None, alias="userKey"),
    data: Any = Body(None)
):
    """Merge the pushed dataset into the stored one and return the result."""
    result = replication.push(user_key, data)
    return PushResponse(**result.to_dict())


@app.get("/api/stats", response_model=StatsResponse)
def stats_endpoint():
    """Per-user version counters and collection sizes."""
    return StatsResponse(stats=[UserStats(**row) for row in dao.get_stats()])


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
    return _error_response(400, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Malformed request to {request.url.path}")
    return _error_response(400, "Malformed request", jsonable_encoder(exc.errors()))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Storage unavailable for {request.url.path}: {exc.message}")
    return _error_response(503, "Storage unavailable", exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error_response(404, "Endpoint not found")
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    return _error_response(500, "Internal server error", exc)
