"""
auth/passwords.py -- Password hashing and credential verification.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Its cost factor makes brute
  force expensive and checkpw compares in constant time, so response time
  does not depend on where a mismatch occurs. Hashes produced by other
  bcrypt implementations ($2a$, $2b$, $2y$) verify unchanged.

  authenticate() always runs exactly one bcrypt comparison, against a dummy
  hash when the username is unknown. Unknown user and wrong password take the
  same time and raise the same InvalidCredentialError, so neither timing nor
  error text reveals which usernames exist.

  Plaintext passwords are never logged, echoed or stored.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import InvalidCredentialError

if TYPE_CHECKING:
    from auth.models import Credential
    from auth.store import CredentialStore

logger = logging.getLogger("authgate.auth")


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer rejects passwords
    whose UTF-8 encoding is longer than that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a non-match, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("authgate_timing_dummy")


def authenticate(credentials: CredentialStore, username: str, password: str) -> Credential:
    """Return the Credential for a correct username/password pair.

    Raises InvalidCredentialError for an unknown username or a wrong password.
    """
    credential = credentials.get_by_username(username)
    if credential is None:
        # Do NOT return before running bcrypt.
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentialError()
    if not verify_password(password, credential.hashed_password):
        raise InvalidCredentialError()
    logger.info("Password login succeeded for user_id=%d", credential.id)
    return credential
