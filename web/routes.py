"""
web/routes.py -- Browser routes for Google OAuth2 login sessions.

These routes drive the cookie-based login flow. They share app.state with the
API routes (same SessionStore and DelegatedLoginFlow) but never import from api/.

Routes:
  GET  /                        -- session status; login_url when not signed in
  GET  /login/google            -- set the state cookie and redirect to Google
  GET  /auth/google/callback    -- validate state, exchange code, start a session
  GET  /logout                  -- end the session and clear both cookies
  GET  /api/user                -- the signed-in profile (401 without a session)

Every failed callback sends the browser back to / with the state cookie
cleared. The specific failure is logged, never shown to the browser.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from auth.dependencies import try_get_session_identity
from auth.errors import DelegatedLoginError
from auth.oauth import DelegatedLoginFlow
from core.config import get_settings
from web.models import ProfileResponse, SessionStatusResponse, SessionUserResponse

logger = logging.getLogger("authgate.web")

router = APIRouter()

LOGIN_PATH = "/login/google"


def _home_redirect() -> RedirectResponse:
    resp = RedirectResponse("/", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/")
def index(request: Request) -> SessionStatusResponse:
    identity = try_get_session_identity(request)
    if identity is None:
        return SessionStatusResponse(authenticated=False, login_url=LOGIN_PATH)
    return SessionStatusResponse(authenticated=True, user=ProfileResponse.from_identity(identity))


@router.get(LOGIN_PATH)
def login_redirect(request: Request) -> RedirectResponse:
    """Start a login attempt: store a fresh state in a cookie and redirect to Google."""
    settings = get_settings()
    login_flow: DelegatedLoginFlow = request.app.state.login_flow

    redirect = login_flow.begin_login()
    resp = RedirectResponse(redirect.url, status_code=302)
    resp.set_cookie(
        key=settings.state_cookie_name,
        value=redirect.state,
        max_age=settings.state_expire_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
    return resp


@router.get("/auth/google/callback")
def oauth_callback(
    request: Request,
    state: Optional[str] = None,
    code: Optional[str] = None,
) -> RedirectResponse:
    """Handle the Google redirect and start a browser session.

    Flow:
      1. Compare ?state= with the state cookie (no network call on mismatch).
      2. Exchange ?code= for a provider access token.
      3. Fetch the userinfo profile and store it under a new session ID.
      4. Set the session cookie, clear the state cookie, redirect to /.

    handle_callback() blocks on outbound HTTP, so this is a plain def and
    FastAPI runs it in the threadpool.
    """
    settings = get_settings()
    login_flow: DelegatedLoginFlow = request.app.state.login_flow
    stored_state = request.cookies.get(settings.state_cookie_name)

    try:
        identity = login_flow.handle_callback(state, stored_state, code)
    except DelegatedLoginError as exc:
        logger.warning("Google login failed: %s", exc.code)
        resp = _home_redirect()
        resp.delete_cookie(settings.state_cookie_name)
        return resp

    session_id = login_flow.create_session(identity)
    resp = _home_redirect()
    resp.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_expire_seconds or None,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
    resp.delete_cookie(settings.state_cookie_name)
    return resp


@router.get("/logout")
def logout(request: Request) -> RedirectResponse:
    settings = get_settings()
    login_flow: DelegatedLoginFlow = request.app.state.login_flow

    login_flow.end_session(request.cookies.get(settings.session_cookie_name))
    resp = _home_redirect()
    resp.delete_cookie(settings.session_cookie_name)
    resp.delete_cookie(settings.state_cookie_name)
    return resp


@router.get("/api/user")
def session_user(request: Request) -> SessionUserResponse:
    """Return the profile of the signed-in browser user."""
    settings = get_settings()
    if not request.cookies.get(settings.session_cookie_name):
        raise HTTPException(status_code=401, detail={"code": "not_logged_in", "message": "Not logged in."})

    identity = try_get_session_identity(request)
    if identity is None:
        raise HTTPException(status_code=401, detail={"code": "invalid_session", "message": "Invalid session."})
    return SessionUserResponse(user=ProfileResponse.from_identity(identity))
