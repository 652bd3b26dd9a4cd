"""
auth/oauth.py -- Google OAuth2 authorization-code login and browser sessions.

Flow (one login attempt):
  1. begin_login() mints a random anti-forgery state and builds the provider
     authorization URL carrying it (access_type=offline). The web layer stores
     the state in a short-lived HTTP-only cookie and redirects.
  2. The provider redirects back with ?state=...&code=....
     handle_callback() compares the query state to the cookie state BEFORE
     any network call, then exchanges the code at the token endpoint and
     fetches the userinfo profile with the resulting access token.
  3. create_session() stores the profile under a new random session ID; the
     web layer puts that ID in an HTTP-only cookie.

Each outbound call is a single attempt with a hard timeout. No retries:
failures surface immediately as DelegatedLoginError subclasses and the web
layer sends the browser back to the entry page.

Security notes:
  State comparison uses hmac.compare_digest. An empty stored state (no
  cookie) never matches, even against an empty query parameter.

  Anti-forgery tokens from abandoned attempts are not tracked server-side.
  They are useless on their own: a forged callback needs both the victim's
  cookie and a matching state parameter.

  The authorization code, provider access token and provider error bodies
  are never logged.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple, Optional

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.requests_client import OAuth2Session

from auth.errors import (
    ConfigurationError,
    ExchangeFailedError,
    MissingCodeError,
    ProfileFetchFailedError,
    ProfileParseFailedError,
    StateMismatchError,
)
from auth.models import DelegatedIdentity

if TYPE_CHECKING:
    from auth.store import SessionStore
    from core.config import Settings

logger = logging.getLogger("authgate.auth.oauth")

STATE_TOKEN_BYTES = 16
SESSION_ID_BYTES = 32


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable OAuth2 client configuration, built once at startup.

    Construction fails with ConfigurationError if the client ID or secret is
    empty. The lifespan builds this before serving, so a misconfigured
    process stops instead of failing on the first login.
    """

    client_id: str
    client_secret: str
    redirect_url: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("Google client ID not configured. Set GOOGLE_CLIENT_ID.")
        if not self.client_secret:
            raise ConfigurationError("Google client secret not configured. Set GOOGLE_CLIENT_SECRET.")

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderConfig:
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_url=settings.google_redirect_url,
            authorize_url=settings.google_authorize_url,
            token_url=settings.google_token_url,
            userinfo_url=settings.google_userinfo_url,
            scopes=tuple(settings.google_scopes.split()),
            timeout=settings.provider_timeout_seconds,
        )


class LoginRedirect(NamedTuple):
    state: str
    url: str


def generate_state_token() -> str:
    """Return a fresh URL-safe anti-forgery token (16 random bytes)."""
    return secrets.token_urlsafe(STATE_TOKEN_BYTES)


def generate_session_id() -> str:
    return secrets.token_urlsafe(SESSION_ID_BYTES)


def states_match(received_state: Optional[str], stored_state: Optional[str]) -> bool:
    """Constant-time state comparison. A missing stored state never matches."""
    if not stored_state or received_state is None:
        return False
    return hmac.compare_digest(received_state.encode("utf-8"), stored_state.encode("utf-8"))


def _reject_unsuccessful_token_response(resp: requests.Response) -> requests.Response:
    # Compliance hook: authlib would otherwise parse a 4xx body as a token.
    if not 200 <= resp.status_code < 300:
        raise ExchangeFailedError(f"Token endpoint returned status {resp.status_code}.")
    return resp


class DelegatedLoginFlow:
    """Orchestrates the three-leg Google login and owns the session mapping.

    session_factory builds the authlib OAuth2Session used for each attempt.
    It is a seam for tests, which mount a stub transport on the session.
    """

    def __init__(
        self,
        config: ProviderConfig,
        sessions: SessionStore,
        session_factory: Callable[..., OAuth2Session] = OAuth2Session,
    ) -> None:
        self.config = config
        self.sessions = sessions
        self._session_factory = session_factory

    def _client(self) -> OAuth2Session:
        client = self._session_factory(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=" ".join(self.config.scopes),
            redirect_uri=self.config.redirect_url,
            token_endpoint_auth_method="client_secret_post",
        )
        client.register_compliance_hook("access_token_response", _reject_unsuccessful_token_response)
        return client

    # ------------------------------------------------------------------
    # Leg 1: authorization redirect
    # ------------------------------------------------------------------

    def begin_login(self) -> LoginRedirect:
        """Return a new anti-forgery state and the provider URL embedding it.

        Every call starts an independent attempt; earlier states are not
        invalidated.
        """
        state = generate_state_token()
        with self._client() as client:
            url, _ = client.create_authorization_url(self.config.authorize_url, state=state, access_type="offline")
        return LoginRedirect(state=state, url=url)

    # ------------------------------------------------------------------
    # Legs 2 + 3: callback, code exchange, profile fetch
    # ------------------------------------------------------------------

    def handle_callback(
        self,
        received_state: Optional[str],
        stored_state: Optional[str],
        code: Optional[str],
    ) -> DelegatedIdentity:
        """Validate the callback and resolve the provider identity.

        Raises (in this order of checks):
            StateMismatchError       -- query state differs from the stored state
            MissingCodeError         -- no authorization code
            ExchangeFailedError      -- token endpoint unreachable, non-2xx, or no access token
            ProfileFetchFailedError  -- userinfo unreachable or non-2xx
            ProfileParseFailedError  -- userinfo body is not a usable JSON profile
        """
        if not states_match(received_state, stored_state):
            logger.warning("Invalid oauth state on callback")
            raise StateMismatchError()
        if not code:
            logger.warning("Authorization code not found on callback")
            raise MissingCodeError()

        with self._client() as client:
            self._exchange_code(client, code)
            identity = self._fetch_profile(client)
        logger.info("Google login resolved identity id=%s", identity.id)
        return identity

    def _exchange_code(self, client: OAuth2Session, code: str) -> None:
        try:
            token = client.fetch_token(
                self.config.token_url,
                code=code,
                redirect_uri=self.config.redirect_url,
                timeout=self.config.timeout,
            )
        except (AuthlibBaseError, requests.RequestException, ValueError, TypeError) as exc:
            logger.warning("Code exchange failed: %s", type(exc).__name__)
            raise ExchangeFailedError() from exc
        if not isinstance(token, dict) or not token.get("access_token"):
            logger.warning("Code exchange returned no access token")
            raise ExchangeFailedError("Token response did not include an access token.")

    def _fetch_profile(self, client: OAuth2Session) -> DelegatedIdentity:
        try:
            resp = client.get(self.config.userinfo_url, timeout=self.config.timeout)
        except (AuthlibBaseError, requests.RequestException) as exc:
            logger.warning("Userinfo request failed: %s", type(exc).__name__)
            raise ProfileFetchFailedError() from exc
        if not 200 <= resp.status_code < 300:
            logger.warning("Userinfo request returned status %d", resp.status_code)
            raise ProfileFetchFailedError(f"Userinfo endpoint returned status {resp.status_code}.")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProfileParseFailedError() from exc
        return parse_profile(data)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, identity: DelegatedIdentity) -> str:
        """Store identity under a new unguessable session ID and return the ID."""
        session_id = generate_session_id()
        self.sessions.put(session_id, identity)
        return session_id

    def get_session(self, session_id: Optional[str]) -> Optional[DelegatedIdentity]:
        if not session_id:
            return None
        return self.sessions.get(session_id)

    def end_session(self, session_id: Optional[str]) -> None:
        """Forget session_id. Unknown or missing IDs are a no-op."""
        if session_id:
            self.sessions.delete(session_id)


def parse_profile(data: Any) -> DelegatedIdentity:
    """Map a userinfo JSON object onto DelegatedIdentity.

    Only id is required. Missing or null optional fields become "" / False, and
    numeric ids (some providers send them) are stringified.
    """
    if not isinstance(data, dict):
        raise ProfileParseFailedError("User info must be a JSON object.")
    raw_id = data.get("id")
    if isinstance(raw_id, bool) or not isinstance(raw_id, (str, int)) or raw_id == "":
        raise ProfileParseFailedError("User info is missing an id.")

    def text(name: str) -> str:
        value = data.get(name)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ProfileParseFailedError(f"User info field {name!r} must be a string.")
        return value

    verified = data.get("verified_email")
    if verified is None:
        verified = False
    if not isinstance(verified, bool):
        raise ProfileParseFailedError("User info field 'verified_email' must be a boolean.")

    return DelegatedIdentity(
        id=str(raw_id),
        email=text("email"),
        verified_email=verified,
        name=text("name"),
        given_name=text("given_name"),
        family_name=text("family_name"),
        picture=text("picture"),
        locale=text("locale"),
    )
