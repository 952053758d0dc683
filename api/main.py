"""
api/main.py -- FastAPI application entry point for the account service.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- signed session cookie carrying the user id

Lifespan builds the store and the services once and hangs them on app.state
(startup), then cancels the token purge task and closes the DB (shutdown).
Handlers get the services through auth.dependencies -- there is no global
model registry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.service import AuthService
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings
from core.exceptions import AccountError
from mail.outbox import AccountMailer, Mailer, build_mailer
from storage.avatars import AvatarStorage
from users.service import ProfileService
from users.store import UserStore

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, user_store: UserStore, transport: Mailer) -> None:
    """Construct the services around one store and publish them on app.state.

    Shared by the real lifespan and the test lifespan so both build the exact
    same object graph.
    """
    tokens = TokenIssuer(user_store, reset_ttl_seconds=settings.reset_token_ttl_seconds)
    mailer = AccountMailer(transport, settings.public_url)
    app.state.user_store = user_store
    app.state.auth_service = AuthService(user_store, tokens, mailer)
    app.state.profile_service = ProfileService(
        user_store,
        tokens,
        mailer,
        AvatarStorage(settings.avatar_dir),
        avatar_max_bytes=settings.avatar_max_bytes,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Clear expired password-reset tokens every `interval` seconds.

    Lookups already ignore expired tokens; this only keeps dead values from
    lingering in the table. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval)
        purged = app.state.user_store.purge_expired_reset_tokens(datetime.now(timezone.utc))
        if purged:
            logger.info("Purged %d expired reset token(s)", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Account service starting up")
    user_store = UserStore(_settings.database_url)
    wire_services(app, _settings, user_store, build_mailer(_settings))
    logger.info("Services initialized (mail backend=%s)", _settings.mail_backend)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.token_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Account service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Accounts API",
    description="Registration, email confirmation, sign-in, password reset and profiles.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the LAST registered middleware is the
# outermost. Registered innermost-first: Session -> SlowAPI -> CORS -> TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie=_settings.session_cookie,
    max_age=_settings.session_max_age,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves as the same ErrorResponse envelope: {"message", "code"}
# plus "fields" for validation failures.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str, fields: list[FieldError] | None = None) -> JSONResponse:
    body = ErrorResponse(message=message, code=code, fields=fields).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    return _error(exc.status_code, exc.message, exc.code)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded.

    Plain def: SlowAPIMiddleware calls this handler directly from its sync
    check path, outside Starlette's exception machinery.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests. Please try again later.", "rate_limited")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors: 400 with one entry per offending field."""
    fields = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            message=err.get("msg", "Invalid value."),
        )
        for err in exc.errors()
    ]
    message = fields[0].message if len(fields) == 1 else "Please check the highlighted fields."
    return _error(400, message, "validation_error", fields)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
