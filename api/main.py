"""
api/main.py -- FastAPI application entry point for LunaTransfer.

Thin HTTP transport over the authorization and sharing engine. Routes resolve
the actor (auth/dependencies.py), call into app.state.engine, and let engine
exceptions fall through to the handlers below, which map each error family
to one status code.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the engine on startup from get_settings().
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.access import router as access_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.groups import router as groups_router
from api.routes.v1.sharing import router as sharing_router
from auth.engine import AuthEngine
from auth.errors import (
    ConflictError,
    InvalidCredentials,
    LunaError,
    NotFoundError,
    StorageError,
    TokenError,
    UnauthorizedError,
    ValidationError,
)

__version__ = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lunatransfer.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine on startup. Collections are flat files, so shutdown has nothing to close."""
    logger.info("LunaTransfer API starting up")
    engine = AuthEngine()
    app.state.engine = engine
    logger.info(
        "Engine initialized (data_dir=%s, storage_dir=%s, setup_required=%s)",
        engine.data_dir,
        engine.storage_dir,
        not engine.users.has_users(),
    )
    yield
    logger.info("LunaTransfer API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="LunaTransfer API",
    description="Self-hosted file transfer: users, groups, file visibility, and cross-group sharing.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(groups_router, prefix="/api/v1", tags=["Groups"])
app.include_router(sharing_router, prefix="/api/v1", tags=["Sharing"])
app.include_router(access_router, prefix="/api/v1", tags=["Access"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


def error_status(exc: LunaError) -> int:
    """Map an engine error family to its HTTP status code."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, (InvalidCredentials, TokenError)):
        return 401
    if isinstance(exc, UnauthorizedError):
        return 403
    if isinstance(exc, ValidationError):
        return 400
    return 500


@app.exception_handler(LunaError)
async def engine_error_handler(request: Request, exc: LunaError) -> JSONResponse:
    status = error_status(exc)
    if isinstance(exc, StorageError) or status == 500:
        # Details stay in the server log; the client only learns it failed.
        logger.error("Engine failure on %s %s: %s", request.method, request.url.path, exc)
        error = ErrorDetail(code="internal_error", message="An unexpected error occurred.")
    else:
        error = ErrorDetail(code=exc.code, message=str(exc))
    return JSONResponse(status_code=status, content=ErrorResponse(error=error).model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all HTTP exceptions.

    Routes raise HTTPException with a {"code", "message"} dict as detail; use
    it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus whether the data directory is readable."""
    engine: AuthEngine | None = getattr(request.app.state, "engine", None)
    storage = "ok"
    try:
        if engine is None:
            storage = "error"
        else:
            engine.users.has_users()
            engine.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        storage = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "storage": storage})
