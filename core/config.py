"""
core/config.py -- authgate settings, read from the environment by pydantic-settings.

Nothing else in the project reads os.environ: modules call get_settings().
Each field maps to the upper-cased env var of the same name
(secret_key -> SECRET_KEY, google_client_id -> GOOGLE_CLIENT_ID), and a
.env file in the working directory is honoured when present. List fields
take JSON, e.g. ALLOWED_HOSTS='["auth.example.com"]'.

get_settings() is cached with lru_cache, so the environment is read once per
process. Tests that need a different environment construct Settings()
directly or call get_settings.cache_clear().

Google client credentials are deliberately not required here: the CLI's
hash-password command and the token unit tests load Settings without them.
auth.oauth.ProviderConfig enforces them, and the API lifespan builds one
before serving.

Layer rule: core/ imports nothing from api/, web/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authgate.config")


class Settings(BaseSettings):
    """Every field has a default, so Settings() loads in a bare test environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    # "" means unset; check_secret_key replaces or rejects it.
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Bearer tokens
    # ------------------------------------------------------------------

    token_issuer: str = "authgate"
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Cookies and sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "session_id"
    # Cookie max-age and server-side session TTL. 0 disables the TTL and
    # keeps sessions until logout or restart.
    session_expire_seconds: int = 24 * 3600
    session_purge_interval_seconds: int = 3600
    state_cookie_name: str = "oauthstate"
    state_expire_seconds: int = 600

    # ------------------------------------------------------------------
    # Google OAuth2 (required by the delegated-login flow)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = "http://localhost:8080/auth/google/callback"
    google_authorize_url: str = "https://accounts.google.com/o/oauth2/auth"
    google_token_url: str = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
    google_userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo"
    google_scopes: str = (
        "https://www.googleapis.com/auth/userinfo.email " "https://www.googleapis.com/auth/userinfo.profile"
    )
    provider_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8080", "http://127.0.0.1"]

    # Seed the two reference accounts (admin, user1) into the credential store.
    demo_users_enabled: bool = True

    @model_validator(mode="after")
    def check_secret_key(self) -> "Settings":
        """Generate a throwaway key in debug mode; otherwise demand a real one.

        A generated key changes on every restart, which invalidates all
        bearer tokens issued before it.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required when DEBUG is off. "
                    "Set it in the environment or .env, or set DEBUG=true for local development."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a temporary key (DEBUG mode)")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long.")
        return self

    @model_validator(mode="after")
    def check_lifetimes(self) -> "Settings":
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if self.session_purge_interval_seconds <= 0:
            raise ValueError("SESSION_PURGE_INTERVAL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
