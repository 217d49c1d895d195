"""
api/main.py -- FastAPI application entry point for the game portal auth service.

Exposes registration, login, sessions, password reset and account
administration over HTTP. Game/category CRUD lives in other services; they
reuse auth/ for identity and permission checks.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- per-route limits plus the application-wide per-IP
                              cap from api.limiter
  4. security_headers      -- HSTS, nosniff, frame and referrer policy
  5. log_requests          -- latency + status for every request
  6. csrf_protect          -- rejects unsafe /api requests without a live token,
                              issues a fresh token on every response

Lifespan builds every auth component onto app.state (api/state.py), starts
the sweep and inactivity background tasks, and tears both down on shutdown.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded as SlowAPIRateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from api.state import init_auth_state, sweep_expired
from auth.csrf import CSRF_BODY_FIELD, CSRF_COOKIE, CSRF_HEADER
from auth.dependencies import get_current_user, get_session_claims
from auth.errors import AuthError, CsrfValidationFailed, RateLimitExceeded
from auth.models import User
from auth.store import UserStore
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gameportal.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background maintenance tasks
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI) -> None:
    """Drop expired CSRF tokens, origin locks and revoked jtis on a fixed timer.

    Runs independently of request traffic. Each sweep holds a map's lock only
    for a snapshot copy and per-key deletes, so requests are never stalled.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(app.state.settings.sweep_interval_seconds)
        try:
            removed = sweep_expired(app.state)
        except Exception:
            logger.exception("Sweep failed; retrying next interval")
            continue
        if any(removed.values()):
            logger.debug("Sweep removed %s", removed)


async def _inactivity_loop(app: FastAPI) -> None:
    """Mark long-idle accounts inactive once a day.

    The UPDATE runs in a worker thread so a slow database cannot block the
    event loop.
    """
    while True:
        await asyncio.sleep(app.state.settings.inactivity_sweep_interval_seconds)
        try:
            await asyncio.to_thread(app.state.lockout.mark_inactive_accounts)
        except Exception:
            logger.exception("Inactivity job failed; retrying next interval")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. User store first -- every auth component reads from it.
      2. Auth components second -- built together by init_auth_state().
      3. Background tasks last -- they reference app.state components.
    """
    logger.info("Game portal auth API starting up")
    user_store = UserStore(settings.database_url) if settings.database_url else UserStore()
    init_auth_state(app.state, settings, user_store)
    if not user_store.has_users():
        logger.warning("No accounts exist yet -- create one with: python main.py create-admin")
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app))
    app.state.inactivity_task = asyncio.create_task(_inactivity_loop(app))

    yield

    for task in (app.state.sweep_task, app.state.inactivity_task):
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.user_store.close()
    logger.info("Game portal auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Game Portal Auth API",
    description="Accounts, sessions, password reset and access control for the game-submission portal.",
    version=API_VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


def _auth_error_response(exc: AuthError) -> JSONResponse:
    """Render an AuthError into the standard envelope with its status code."""
    response = JSONResponse(status_code=exc.status_code, content={"error": exc.to_detail()})
    response.headers["Cache-Control"] = "no-store"
    if isinstance(exc, RateLimitExceeded):
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


# ---------------------------------------------------------------------------
# CSRF middleware
#
# Enforcement: unsafe methods on /api/ paths, except the exempt list, must
# carry a live token in the X-CSRF-Token header or, for JSON bodies, in a
# top-level "_csrf" field. A token bound to a user is accepted only from that
# user's session.
#
# Issuance: every response gets a fresh token in both a readable cookie and
# the X-CSRF-Token header, bound to whoever holds a session after the handler
# ran (so logout hands back an anonymous token).
# ---------------------------------------------------------------------------

_UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


async def _submitted_csrf_token(request: Request) -> str | None:
    token = request.headers.get(CSRF_HEADER)
    if token:
        return token
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = json.loads(await request.body() or b"null")
        except ValueError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get(CSRF_BODY_FIELD), str):
            return payload[CSRF_BODY_FIELD]
    return None


def _requires_csrf(request: Request) -> bool:
    path = request.url.path
    return (
        request.method in _UNSAFE_METHODS
        and path.startswith("/api/")
        and path not in request.app.state.settings.csrf_exempt_paths
    )


@app.middleware("http")
async def csrf_protect(request: Request, call_next):
    csrf = request.app.state.csrf
    if _requires_csrf(request):
        claims = get_session_claims(request)
        token = await _submitted_csrf_token(request)
        if not csrf.validate(token, user_id=claims.user_id if claims else None):
            logger.warning("CSRF validation failed: %s %s", request.method, request.url.path)
            return _auth_error_response(CsrfValidationFailed())

    response = await call_next(request)

    claims = get_session_claims(request)
    fresh = csrf.issue(user_id=claims.user_id if claims else None)
    response.headers[CSRF_HEADER] = fresh
    response.set_cookie(
        CSRF_COOKIE,
        value=fresh,
        max_age=csrf.ttl_seconds,
        samesite="lax",
        secure=request.app.state.settings.secure_cookies,
    )
    return response


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
# Security headers middleware
# ---------------------------------------------------------------------------

_SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() inserts at the outside of the stack, so the last call is
# the outermost layer. These calls come after the @app.middleware functions
# above, so TrustedHost and CORS wrap everything (a CSRF rejection still
# carries CORS headers).
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
    expose_headers=[CSRF_HEADER],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Game Portal Auth API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="Game Portal Auth API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render expected auth outcomes (bad credentials, lockout, 401/403, ...)."""
    return _auth_error_response(exc)


@app.exception_handler(SlowAPIRateLimitExceeded)
async def rate_limit_handler(request: Request, exc: SlowAPIRateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a slowapi route limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
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
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail ({"code", "message"});
    use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback is logged with an opaque correlation id; the client gets
    only the id, never the exception text.
    """
    correlation_id = uuid.uuid4().hex
    logger.exception("Unhandled exception [%s] on %s %s", correlation_id, request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
                correlation_id=correlation_id,
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# Exempt from every rate limit -- load balancer checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
@limiter.exempt
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and per-component status."""
    db_ok = request.app.state.user_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
