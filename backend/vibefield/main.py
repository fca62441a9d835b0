"""Main FastAPI application."""
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vibefield.settings import settings
from vibefield.api.convergence import router as convergence_router
from vibefield.api.field import router as field_router
from vibefield.api.flow import router as flow_router
from vibefield.api.policy import router as policy_router
from vibefield.api.presence import router as presence_router
from vibefield.domain.common.errors import (
    AuthorizationError as DomainAuthorizationError,
    StorageUnavailableError,
    ValidationError as DomainValidationError,
)
from vibefield.infra.db import base as db_base
from vibefield.infra.db.base import Base
# Import all models to ensure they're registered with Base
from vibefield.infra.db.models import FriendshipModel, PresenceModel  # noqa: F401
from vibefield.infra.jobs.expiry_sweeper import ExpirySweeper
from vibefield.infra.messaging.redis_bus import redis_bus
from vibefield.infra.realtime.presence_fanout import PresenceFanout
from vibefield.infra.realtime.ws_manager import ws_manager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    engine = db_base.engine
    sweeper_task = None
    fanout_task = None

    if engine is not None:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OSError, ConnectionError) as e:
            # Database might not be ready yet; /ready reports it
            logger.warning(f"Could not connect to database during startup: {e}")

        sweeper = ExpirySweeper(
            db_base.AsyncSessionLocal,
            interval_seconds=settings.presence_sweep_interval_seconds,
        )
        sweeper_task = asyncio.create_task(sweeper.run_forever())

    # Presence changes reach every instance through Redis; each pushes to its own sockets
    try:
        await redis_bus.connect()
        if db_base.AsyncSessionLocal is not None:
            fanout = PresenceFanout(ws_manager, db_base.AsyncSessionLocal)
            fanout_task = asyncio.create_task(
                redis_bus.subscribe_forever(settings.presence_events_channel, fanout.handle)
            )
            logger.info("Presence fan-out Redis subscriber started")
    except (OSError, ConnectionError) as e:
        logger.warning(f"Could not connect to Redis during startup: {e}")

    yield

    # Shutdown (CancelledError here or in Starlette's receive() is normal on Ctrl+C)
    try:
        await _cancel(fanout_task)
        await _cancel(sweeper_task)
        await redis_bus.disconnect()
        if engine is not None:
            await engine.dispose()
    except asyncio.CancelledError:
        logger.info("Lifespan shutdown cancelled (e.g. Ctrl+C); cleanup attempted.")
        raise


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r".*",
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
    allow_headers=["*"],
    max_age=3600,
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.info(f"📥 [SERVER REQUEST] {request.method} {request.url.path}")
        logger.debug(f"   Query params: {dict(request.query_params)}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"📤 [SERVER RESPONSE] {request.method} {request.url.path} - "
            f"{response.status_code} ({process_time:.3f}s)"
        )
        return response


# Add logging middleware AFTER CORS (CORS must be first)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed logging."""
    logger.error(f"❌ [VALIDATION ERROR] {request.method} {request.url.path}")
    if exc.body:
        body_str = exc.body.decode("utf-8", errors="replace") if isinstance(exc.body, bytes) else str(exc.body)
        logger.error(f"   Request body: {body_str}")
    errors = exc.errors()
    logger.error(f"   Validation errors ({len(errors)}):")
    for i, error in enumerate(errors, 1):
        logger.error(f"   Error {i}: {json.dumps(error, default=str)}")
    return JSONResponse(status_code=422, content={"detail": json.loads(json.dumps(errors, default=str))})


@app.exception_handler(DomainAuthorizationError)
async def domain_authorization_handler(request: Request, exc: DomainAuthorizationError):
    """Return 403 when the caller is not allowed to see the resource."""
    return JSONResponse(status_code=403, content={"detail": exc.message})


@app.exception_handler(DomainValidationError)
async def domain_validation_handler(request: Request, exc: DomainValidationError):
    """Return 422 for domain validation errors (bad position, oversized bbox, ...)."""
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    """Return 503 + Retry-After; the client owns the retry/backoff policy."""
    logger.warning(f"⚠️ [STORAGE] {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=503,
        content={"detail": exc.message, "retryable": True},
        headers={"Retry-After": str(exc.retry_after_s)},
    )


# Health check (root and under /v1 so GET /v1/health works behind a /v1 proxy prefix)
@app.get("/health")
@app.get(f"{settings.api_v1_prefix}/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": settings.app_version}


@app.get("/ready")
async def readiness():
    """Readiness endpoint: run all checks and return 200 if ready, 503 otherwise."""
    from vibefield.readiness import is_ready, run_all_checks

    checks = await run_all_checks()
    ready, summary = is_ready(checks)
    if ready:
        return {"ready": True, "checks": summary}
    return JSONResponse(status_code=503, content={"ready": False, "checks": summary})


# API v1 routes
app.include_router(presence_router, prefix=settings.api_v1_prefix)
app.include_router(field_router, prefix=settings.api_v1_prefix)
app.include_router(convergence_router, prefix=settings.api_v1_prefix)
app.include_router(policy_router, prefix=settings.api_v1_prefix)
app.include_router(flow_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("vibefield.main:app", host="0.0.0.0", port=8000, reload=True)
