"""
auth/tokens.py -- Signed bearer tokens with access/refresh rotation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry user_id, username, email, kind,
       iss, sub, iat and exp. Signing is deterministic: the same claims and
       secret always produce the same token, which is what lets
       verify_token() work without a token store.

  Verification order: structure -> signature -> claims -> expiry -> kind.
       The signature is checked over the raw header.claims segments before
       the claims are parsed, so any edit to the encoded claims is reported
       as a bad signature rather than as a parse error.

  Expiry is checked here against the injectable clock, not by jose, so a
       token is rejected at exactly now >= exp (no leeway) and tests can move
       time forward.

  Kind: every token carries kind="access" or kind="refresh". verify_token()
       accepts either unless the caller names the kind it expects. Protected
       endpoints pass TokenKind.access, refresh passes TokenKind.refresh, so a
       long-lived refresh token cannot be replayed as a bearer credential.

  Revocation: there is none. A token stays valid until exp. Keep the access
       lifetime short.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from jose import jws, jwt
from jose.exceptions import JOSEError, JWSError

from auth.errors import (
    BadSignatureError,
    ExpiredTokenError,
    InvalidRefreshTokenError,
    MalformedTokenError,
    TokenError,
    TokenIssueError,
    UserNotFoundError,
    WrongTokenKindError,
)
from auth.models import Credential, TokenClaims, TokenKind, TokenPair

if TYPE_CHECKING:
    from auth.store import CredentialStore
    from core.config import Settings

logger = logging.getLogger("authgate.auth")

_ALGORITHM = "HS256"

DEFAULT_ISSUER = "authgate"
ACCESS_TOKEN_TTL = 15 * 60
REFRESH_TOKEN_TTL = 7 * 24 * 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mints and verifies signed access/refresh token pairs.

    Stateless apart from the immutable secret and lifetimes, so one instance
    is shared by all request threads without locking.

    Usage:
        service = TokenService.from_settings(get_settings())
        pair = service.issue_token_pair(credential)
        claims = service.verify_token(pair.access_token, kind=TokenKind.access)
        new_pair = service.refresh_token_pair(pair.refresh_token, credential_store)
    """

    def __init__(
        self,
        secret_key: str,
        *,
        issuer: str = DEFAULT_ISSUER,
        access_ttl: int = ACCESS_TOKEN_TTL,
        refresh_ttl: int = REFRESH_TOKEN_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._clock = clock
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> TokenService:
        return cls(
            settings.secret_key,
            issuer=settings.token_issuer,
            access_ttl=settings.access_token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_token_pair(self, credential: Credential) -> TokenPair:
        """Sign an access token and a refresh token for the same identity.

        Both share one issued-at instant and differ only in lifetime and kind.
        Raises TokenIssueError if signing fails.
        """
        now = self._now()
        access = self._sign(self._claims_for(credential, now, TokenKind.access))
        refresh = self._sign(self._claims_for(credential, now, TokenKind.refresh))
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            expires_in=self.access_ttl,
            refresh_expires_in=self.refresh_ttl,
        )

    def _claims_for(self, credential: Credential, now: int, kind: TokenKind) -> TokenClaims:
        ttl = self.access_ttl if kind is TokenKind.access else self.refresh_ttl
        return TokenClaims(
            user_id=credential.id,
            username=credential.username,
            email=credential.email,
            issued_at=now,
            expires_at=now + ttl,
            issuer=self.issuer,
            kind=kind,
        )

    def _sign(self, claims: TokenClaims) -> str:
        try:
            return jwt.encode(_to_payload(claims), self._secret_key, algorithm=_ALGORITHM)
        except JOSEError as exc:
            logger.error("Token signing failed: %s", exc)
            raise TokenIssueError() from exc

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_token(self, token: str, kind: Optional[TokenKind] = None) -> TokenClaims:
        """Verify signature and expiry and return the token's claims.

        Depends only on the secret and the clock. Raises:
            MalformedTokenError  -- not a three-segment JWS, or unusable claims
            BadSignatureError    -- signature does not match the secret
            ExpiredTokenError    -- now >= exp
            WrongTokenKindError  -- kind was given and the token is the other kind
        """
        if not token or token.count(".") != 2:
            raise MalformedTokenError("Token must have three dot-separated segments.")
        try:
            jws.get_unverified_header(token)
        except JWSError as exc:
            raise MalformedTokenError() from exc

        try:
            raw = jws.verify(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWSError as exc:
            raise BadSignatureError() from exc

        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise MalformedTokenError("Token claims are not valid JSON.") from exc
        claims = _from_payload(payload)
        if claims.issuer != self.issuer:
            raise MalformedTokenError("Unexpected token issuer.")

        if self._now() >= claims.expires_at:
            raise ExpiredTokenError()
        if kind is not None and claims.kind is not kind:
            raise WrongTokenKindError(f"Expected a {kind.value} token.")
        return claims

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_token_pair(self, refresh_token: str, credentials: CredentialStore) -> TokenPair:
        """Exchange a valid refresh token for a brand-new access/refresh pair.

        The old refresh token is not reused; a fresh one is signed every time.
        Any verification failure becomes InvalidRefreshTokenError. A token
        whose username no longer exists raises UserNotFoundError.
        """
        try:
            claims = self.verify_token(refresh_token, kind=TokenKind.refresh)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc.code)
            raise InvalidRefreshTokenError() from exc

        credential = credentials.get_by_username(claims.username)
        if credential is None:
            raise UserNotFoundError()
        return self.issue_token_pair(credential)

    def _now(self) -> int:
        return int(self._clock().timestamp())


# ---------------------------------------------------------------------------
# Claim mapping
# ---------------------------------------------------------------------------


def _to_payload(claims: TokenClaims) -> dict[str, Any]:
    return {
        "user_id": claims.user_id,
        "username": claims.username,
        "email": claims.email,
        "kind": claims.kind.value,
        "iss": claims.issuer,
        "sub": claims.subject,
        "iat": claims.issued_at,
        "exp": claims.expires_at,
    }


def _from_payload(payload: Any) -> TokenClaims:
    if not isinstance(payload, dict):
        raise MalformedTokenError("Token claims must be a JSON object.")

    for name in ("user_id", "iat", "exp"):
        value = payload.get(name)
        # bool is an int subclass; reject it explicitly.
        if not isinstance(value, int) or isinstance(value, bool):
            raise MalformedTokenError(f"Claim {name!r} must be an integer.")
    for name in ("username", "email", "iss", "sub", "kind"):
        if not isinstance(payload.get(name), str):
            raise MalformedTokenError(f"Claim {name!r} must be a string.")
    if payload["sub"] != payload["username"]:
        raise MalformedTokenError("Claim 'sub' does not match 'username'.")

    try:
        kind = TokenKind(payload["kind"])
    except ValueError as exc:
        raise MalformedTokenError("Unknown token kind.") from exc

    return TokenClaims(
        user_id=payload["user_id"],
        username=payload["username"],
        email=payload["email"],
        issued_at=payload["iat"],
        expires_at=payload["exp"],
        issuer=payload["iss"],
        kind=kind,
    )
