"""
api/main.py -- FastAPI application factory for Saiqa.

create_app(settings) builds a fully wired app from one Settings object. asgi.py
calls it with get_settings(); tests call it with their own Settings so no
environment variable is ever read during a test run.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
                              (credentials allowed: auth travels in cookies)
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, stores, token codec, session service, purge
task) and shutdown (cancel purge task, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import configure_limiter, limiter
from api.models import HealthResponse
from api.routes.auth import router as auth_router
from api.routes.designations import router as designations_router
from api.routes.units import router as units_router
from api.routes.users import router as users_router
from audit.store import AuditStore
from auth.cookies import CookiePolicy
from auth.sessions import SessionService
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenCodec
from core.config import Settings
from core.db import create_db_engine
from core.errors import ErrorKind, ServiceError
from org.store import DesignationStore, UnitStore

VERSION = "1.0.0"

logger = logging.getLogger("saiqa.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

PURGE_INTERVAL_SECONDS = 6 * 60 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired refresh-token rows every 6 hours.

    Housekeeping only: RefreshTokenStore.is_valid() already ignores expired
    rows, so a missed run never lets an expired token through. The delete is a
    blocking SQLAlchemy call and runs in a worker thread. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        try:
            removed = await asyncio.to_thread(app.state.refresh_token_store.purge_expired)
            logger.info("Purged %d expired refresh tokens", removed)
        except Exception:
            logger.exception("Refresh token purge failed")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- create_all() runs here, every store needs the tables.
      2. Stores and codec second.
      3. SessionService third -- composed from the stores, codec and policy.
      4. Purge task last -- references app.state.refresh_token_store.
    """
    settings: Settings = app.state.settings
    logger.info("Saiqa API starting up (environment=%s)", settings.environment)

    engine = create_db_engine(settings.database_url)
    app.state.engine = engine
    app.state.token_codec = TokenCodec(settings)
    app.state.cookie_policy = CookiePolicy.from_settings(settings)
    app.state.user_store = UserStore(engine)
    app.state.refresh_token_store = RefreshTokenStore(engine)
    app.state.audit_store = AuditStore(engine)
    app.state.unit_store = UnitStore(engine)
    app.state.designation_store = DesignationStore(engine)
    app.state.sessions = SessionService(
        app.state.user_store,
        app.state.refresh_token_store,
        app.state.token_codec,
        app.state.cookie_policy,
        app.state.audit_store,
        rotate_refresh_tokens=settings.rotate_refresh_tokens,
    )
    if not app.state.user_store.has_users():
        logger.warning("No users exist yet. Create the first admin with: python main.py create-user --role admin")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    engine.dispose()
    logger.info("Saiqa API shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body has the same flat shape: {"error": <message>, "code": <code>}
# so clients can parse failures uniformly. Request validation adds "detail".
# ---------------------------------------------------------------------------


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map an ErrorKind to its HTTP status. The only place kinds become statuses."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying. The
    window length of the violated limit is the upper bound.
    """
    retry_after = 60
    limit = getattr(exc, "limit", None)
    if limit is not None and getattr(limit, "limit", None) is not None:
        retry_after = int(limit.limit.get_expiry())
    response = JSONResponse(
        status_code=429,
        content={"error": "Too many requests", "code": "rate_limited"},
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body or query params fail validation."""
    kind = ErrorKind.VALIDATION_ERROR
    return JSONResponse(
        status_code=kind.status_code,
        content={"error": kind.default_message, "code": kind.code, "detail": _validation_detail(exc)},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Flatten Starlette/FastAPI HTTP errors (404 unknown route, 405, ...)."""
    response = JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "code": f"http_{exc.status_code}"},
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    kind = ErrorKind.INTERNAL_ERROR
    return JSONResponse(status_code=kind.status_code, content={"error": kind.default_message, "code": kind.code})


def _validation_detail(exc: RequestValidationError) -> list[dict]:
    """Location and message per failed field. Input values are left out -- they may be passwords."""
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler. Wall-clock time before and
# after call_next gives the latency reported on every response.
# ---------------------------------------------------------------------------


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
# Health endpoint
#
# No authentication and no rate limit -- load balancers and monitoring systems
# must never be throttled or challenged.
# ---------------------------------------------------------------------------


async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(
        status="ok",
        version=VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    """Build the Saiqa ASGI application for the given settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(
        title="Saiqa Admin API",
        description="Users, organizational units and designations behind cookie-based JWT sessions.",
        version=VERSION,
        lifespan=lifespan,
        # No public schema browsing in production.
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.state.settings = settings

    # ------------------------------------------------------------------
    # Middleware stack
    #
    # add_middleware() wraps the current stack, so the LAST one registered
    # is the outermost. Register innermost first: SlowAPI -> CORS ->
    # TrustedHost, so a request meets TrustedHost first.
    # ------------------------------------------------------------------

    configure_limiter(settings)
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
        max_age=3600,
    )

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    app.middleware("http")(log_requests)

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(users_router, prefix="/api", tags=["Users"])
    app.include_router(units_router, prefix="/api", tags=["Units"])
    app.include_router(designations_router, prefix="/api", tags=["Designations"])
    app.add_api_route("/health", health, methods=["GET"], response_model=HealthResponse, tags=["Health"])

    return app
