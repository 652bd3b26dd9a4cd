"""
auth/errors.py -- Exception taxonomy for authentication failures.

Every error carries a stable machine-readable code, the HTTP status the API
layer should answer with, and a human-readable message that is safe to show
to a client. Nothing here includes provider responses, tokens or passwords.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every authentication failure raised by auth/."""

    code = "auth_error"
    status_code = 401
    default_message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(AuthError):
    """Startup-time configuration is unusable. Fatal: the service must not serve."""

    code = "configuration_error"
    status_code = 500
    default_message = "Authentication is not configured."


# ---------------------------------------------------------------------------
# Delegated login (authorization-code flow)
# ---------------------------------------------------------------------------


class DelegatedLoginError(AuthError):
    code = "delegated_login_failed"
    default_message = "Login with the identity provider failed."


class StateMismatchError(DelegatedLoginError):
    code = "state_mismatch"
    default_message = "Anti-forgery state does not match."


class MissingCodeError(DelegatedLoginError):
    code = "missing_code"
    status_code = 400
    default_message = "Authorization code not found."


class ExchangeFailedError(DelegatedLoginError):
    code = "exchange_failed"
    default_message = "Authorization code exchange failed."


class ProfileFetchFailedError(DelegatedLoginError):
    code = "profile_fetch_failed"
    default_message = "Failed getting user info."


class ProfileParseFailedError(DelegatedLoginError):
    code = "profile_parse_failed"
    default_message = "Failed parsing user info."


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid token."


class MalformedTokenError(TokenError):
    code = "malformed_token"
    default_message = "Token is malformed."


class BadSignatureError(TokenError):
    code = "bad_signature"
    default_message = "Token signature is invalid."


class ExpiredTokenError(TokenError):
    code = "token_expired"
    default_message = "Token has expired."


class WrongTokenKindError(TokenError):
    code = "wrong_token_kind"
    default_message = "Token kind is not accepted here."


class InvalidRefreshTokenError(TokenError):
    code = "invalid_refresh_token"
    default_message = "Invalid refresh token."


class UserNotFoundError(TokenError):
    code = "user_not_found"
    default_message = "User not found."


class TokenIssueError(TokenError):
    code = "token_issue_failed"
    status_code = 500
    default_message = "Failed to generate token."


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class InvalidCredentialError(AuthError):
    """Unknown username and wrong password are deliberately the same error."""

    code = "invalid_credentials"
    default_message = "Invalid username or password."
