"""
api/main.py -- FastAPI application for authgate: lifespan, middleware, errors.

Start the full service (token API + browser login) with:
    uvicorn asgi:app --port 8080

Requests pass through, in order:
  TrustedHostMiddleware  Host header must be in ALLOWED_HOSTS
  CORSMiddleware         browser origins from CORS_ORIGINS
  SlowAPIMiddleware      shared limiter from api.limiter

The lifespan builds every auth component once from Settings and stores it on
app.state; handlers read app.state, never global configuration. A missing
Google client ID or secret stops startup before the first request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.tokens import router as tokens_router
from auth.errors import AuthError
from auth.oauth import DelegatedLoginFlow, ProviderConfig
from auth.store import DEMO_CREDENTIALS, CredentialStore, SessionStore
from auth.tokens import TokenService
from core.config import get_settings

__version__ = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")


# ---------------------------------------------------------------------------
# Startup / shutdown
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Sweep expired browser sessions every `interval` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = app.state.sessions.purge_expired()
        if removed:
            logger.info("Purged %d expired sessions", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the auth components into app.state and run the session sweeper.

    ConfigurationError from ProviderConfig.from_settings() is not caught:
    the server must not come up without provider credentials.
    """
    settings = get_settings()
    logger.info("authgate %s starting", __version__)

    provider = ProviderConfig.from_settings(settings)
    logger.info("Google OAuth2 client configured (redirect=%s)", provider.redirect_url)

    session_ttl = settings.session_expire_seconds or None
    sessions = SessionStore(ttl_seconds=session_ttl)
    app.state.sessions = sessions
    app.state.login_flow = DelegatedLoginFlow(provider, sessions)
    app.state.token_service = TokenService.from_settings(settings)
    app.state.credentials = CredentialStore(DEMO_CREDENTIALS if settings.demo_users_enabled else ())
    logger.info("Local credentials loaded: %d, session TTL: %s", len(app.state.credentials), session_ttl)

    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))
    try:
        yield
    finally:
        app.state.purge_task.cancel()
        logger.info("authgate stopped")


_settings = get_settings()

app = FastAPI(
    title="authgate",
    description="Google OAuth2 login sessions and signed bearer tokens with refresh rotation.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
# SlowAPI finds the limiter through app.state.limiter.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms (client=%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


app.include_router(tokens_router, prefix="/api/v1", tags=["Tokens"])
# web/routes.py is mounted by asgi.py so api/ never imports web/.


# ---------------------------------------------------------------------------
# Error envelope
#
# Every error body is {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an auth failure with the status and code carried by the exception."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return _error(exc.status_code, exc.code, exc.message, headers={"Cache-Control": "no-store"})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "-")
    retry_after = str(int(getattr(exc, "retry_after", 60)))
    return _error(429, "rate_limited", "Too many requests.", detail=str(exc.detail), headers={"Retry-After": retry_after})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are 400 invalid_request, not FastAPI's default 422."""
    return _error(400, "invalid_request", "Invalid request body.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Dependencies raise HTTPException with a {"code", "message"} dict; pass it through."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Traceback goes to the log only.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Liveness check. Unauthenticated, so it reports nothing about sessions."""
    return HealthResponse(version=__version__)
