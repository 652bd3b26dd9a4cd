"""
api/routes/v1/tokens.py -- Bearer-token login, refresh and protected endpoints.

Routes:
  POST /api/v1/login            -- password login; returns access + refresh tokens
  POST /api/v1/refresh          -- rotate a refresh token into a new pair
  GET  /api/v1/protected/user   -- identity from the access token (requires Bearer)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT, default 10/minute).
  authenticate() equalizes timing between unknown users and wrong passwords;
  use it, never inline the lookup + bcrypt check.
  Cache-Control: no-store on every response that carries tokens.

Errors are raised as auth.errors.AuthError subclasses and rendered by the
AuthError handler in api/main.py into the standard error envelope.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, RefreshRequest, TokenResponse, TokenUserResponse
from auth.dependencies import require_access_token
from auth.models import TokenClaims
from auth.passwords import authenticate
from auth.store import CredentialStore
from auth.tokens import TokenService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/login:            public -- login endpoint must be unauthenticated
# - POST /api/v1/refresh:          public -- the refresh token in the body is the credential
# - GET  /api/v1/protected/*:      requires a valid ACCESS token (router-level dependency)
router = APIRouter()
protected_router = APIRouter(prefix="/protected", dependencies=[Depends(require_access_token)])


def _token_response(response: TokenResponse) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=response.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/login", response_model=TokenResponse)
@limiter.limit(get_settings().login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a fresh token pair.

    Returns the same 401 invalid_credentials error for a wrong username and a
    wrong password so the response does not leak which usernames exist.
    """
    credentials: CredentialStore = request.app.state.credentials
    token_service: TokenService = request.app.state.token_service

    credential = authenticate(credentials, body.username, body.password)
    pair = token_service.issue_token_pair(credential)
    return _token_response(TokenResponse.from_pair(pair))


@router.post("/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Verify a refresh token and return a new access/refresh pair.

    The presented refresh token stays valid until its own expiry; there is
    no revocation list.
    """
    credentials: CredentialStore = request.app.state.credentials
    token_service: TokenService = request.app.state.token_service

    pair = token_service.refresh_token_pair(body.refresh_token, credentials)
    return _token_response(TokenResponse.from_pair(pair))


@protected_router.get("/user", response_model=TokenUserResponse)
def protected_user(claims: TokenClaims = Depends(require_access_token)) -> TokenUserResponse:
    """Return the identity carried by the caller's access token."""
    return TokenUserResponse.from_claims(claims)


router.include_router(protected_router)
