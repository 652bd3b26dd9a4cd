"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two independent identities can be attached to a request:
  1. Bearer token -- Authorization: Bearer <token>, verified by TokenService
     as an ACCESS token. Used by /api/v1/protected/*.
  2. Browser session -- the session cookie set after Google login, looked up
     in the SessionStore. Used by / and /api/user.

require_access_token() is the hard variant: any failure is an HTTP 401 with
the structured error envelope. try_get_session_identity() is the soft
variant and returns None.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for Request/HTTPException)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from auth.errors import TokenError
from auth.models import DelegatedIdentity, TokenClaims, TokenKind
from auth.oauth import DelegatedLoginFlow
from auth.tokens import TokenService
from core.config import get_settings


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_access_token(request: Request) -> TokenClaims:
    """Verify the bearer access token and attach its claims to request.state.claims.

    Use as a FastAPI dependency:
        @router.get("/protected/thing")
        def route(claims: TokenClaims = Depends(require_access_token)): ...

    The header must be exactly "Bearer <token>". Refresh tokens are rejected.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise _unauthorized("missing_authorization", "Missing authorization header.")

    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise _unauthorized("invalid_authorization", "Invalid authorization header format.")

    token_service: TokenService = request.app.state.token_service
    try:
        claims = token_service.verify_token(parts[1], kind=TokenKind.access)
    except TokenError as exc:
        raise _unauthorized(exc.code, exc.message) from exc

    request.state.claims = claims
    return claims


def try_get_session_identity(request: Request) -> Optional[DelegatedIdentity]:
    """Return the identity behind the session cookie, or None. Never raises."""
    session_id = request.cookies.get(get_settings().session_cookie_name)
    login_flow: DelegatedLoginFlow = request.app.state.login_flow
    return login_flow.get_session(session_id)
