"""
api/main.py -- FastAPI application entry point for RepoHub.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- per-route rate limits from api.limiter (see its docstring)

Lifespan opens the user store, the hub store and the service on startup and
closes the stores on shutdown.

Every error leaves through one of the exception handlers below, so clients
always receive {"success": false, "error": {...}}.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.issues import router as issues_router
from api.routes.v1.repos import router as repos_router
from auth.store import UserStore
from core.config import get_settings
from core.errors import HubError, PersistenceUnavailable
from hub.service import RepositoryService
from hub.store import HubStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("repohub.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores on startup, close them on shutdown.

    The user store comes first so a failing hub database still leaves a
    clear log line about which store could not be opened.
    """
    logger.info("RepoHub API starting up")
    app.state.user_store = UserStore(settings.auth_database_url)
    logger.info("User store initialized")
    app.state.hub_store = HubStore(settings.database_url)
    app.state.service = RepositoryService(app.state.hub_store)
    logger.info("Hub store initialized")

    yield

    app.state.hub_store.close()
    app.state.user_store.close()
    logger.info("RepoHub API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RepoHub API",
    description="Multi-tenant repositories and issues with owner / collaborator / viewer access control.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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
app.include_router(repos_router, prefix="/api/v1", tags=["Repositories"])
app.include_router(issues_router, prefix="/api/v1", tags=["Issues"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(HubError)
async def hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    """Render a domain error with the status code its kind carries."""
    if isinstance(exc, PersistenceUnavailable):
        logger.error("Persistence unavailable on %s %s: %s", request.method, request.url.path, exc.__cause__)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    response = _error(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Synchronous: SlowAPIMiddleware calls this directly without awaiting. Limits
    checked inside a handler reach it through the normal exception middleware.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the path, query or body fails validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Unknown routes and methods still answer in the error envelope."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception is logged, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No auth, no rate limit: load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and the state of both databases."""
    components = {"app": "ok"}
    try:
        request.app.state.hub_store.ping()
        request.app.state.user_store.ping()
        components["database"] = "ok"
    except PersistenceUnavailable:
        logger.error("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=__version__, components=components)
