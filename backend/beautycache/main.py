from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from beautycache.api.routes.cache import router as cache_router
from beautycache.config import settings
from beautycache.core.domain.exceptions import (
    InvalidConfigurationError,
    InvalidKeyError,
    StorageError,
)
from beautycache.infra.logging_config import ShortPathFormatter, configure_logging

formatter = ShortPathFormatter(
    "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
)
configure_logging(formatter, level=settings.log_level_int)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from beautycache.infra.analysis_cache import AnalysisCache
    from beautycache.infra.db.session import async_session_factory, engine, init_db
    from beautycache.infra.scheduler import CacheCleanupScheduler

    try:
        logger.info("Initialising database tables...")
        await init_db()

        cache = AnalysisCache(async_session_factory, ttl_policy=settings.ttl_for)
        scheduler = CacheCleanupScheduler(
            cache,
            degraded_after=settings.cache_degraded_after_failures,
            timezone_name=settings.app_timezone,
        )
        app.state.analysis_cache = cache
        app.state.cleanup_scheduler = scheduler

        if settings.cache_cleanup_enabled:
            await scheduler.start(timedelta(seconds=settings.cache_cleanup_interval_s))
        else:
            logger.info("Cache cleanup scheduler disabled")

        logger.info("Beauty analysis cache ready.")
    except asyncio.CancelledError:
        logger.debug("Startup cancelled (likely due to hot reload)")
        raise
    except Exception:
        logger.exception("Error during application startup")
        raise

    try:
        yield
    finally:
        try:
            await scheduler.aclose()
            await engine.dispose()
            logger.info("Shutting down.")
        except asyncio.CancelledError:
            logger.debug("Shutdown cancelled (likely due to hot reload)")
            raise


app = FastAPI(
    title="Beauty Analysis Cache",
    description="Cached AI analysis results with periodic expiry sweeps",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIDMiddleware)


@app.exception_handler(InvalidKeyError)
@app.exception_handler(InvalidConfigurationError)
async def _invalid_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def _storage_error_handler(request: Request, exc: StorageError):
    logger.warning("Cache storage unavailable on %s %s: %s", request.method, request.url.path, exc)
    detail = str(exc) if settings.debug else "Cache storage unavailable"
    return JSONResponse(status_code=503, content={"detail": detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = str(exc) if settings.debug else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail})


app.include_router(cache_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
