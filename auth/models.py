"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
service and the login flow do the work; routes map these onto API models.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class DelegatedIdentity:
    """Profile returned by the identity provider's userinfo endpoint.

    A point-in-time snapshot taken during the callback. It is never refreshed
    from the provider; a new login produces a new snapshot.
    """

    id: str
    email: str = ""
    verified_email: bool = False
    name: str = ""
    given_name: str = ""
    family_name: str = ""
    picture: str = ""
    locale: str = ""


@dataclass(frozen=True)
class Credential:
    """A local account that can log in with a password.

    hashed_password is a bcrypt hash. The plaintext is never held anywhere.
    """

    id: int
    username: str
    hashed_password: str
    email: str


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Identity and validity window carried inside a signed bearer token.

    issued_at / expires_at are Unix seconds. A token is valid only while
    now < expires_at.
    """

    user_id: int
    username: str
    email: str
    issued_at: int
    expires_at: int
    issuer: str
    kind: TokenKind

    @property
    def subject(self) -> str:
        return self.username

    @property
    def lifetime(self) -> int:
        return self.expires_at - self.issued_at


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access-token lifetime in seconds
    refresh_expires_in: int
    token_type: str = "bearer"
