"""
auth/store.py -- In-memory stores for sessions and local credentials.

Pattern: Repository. Routes, the login flow and the token service talk to
these classes only through put/get/delete and get_by_username; swapping in a
persistent key-value store later means reimplementing these methods, not
touching callers.

Storage is process-local and volatile: a restart logs everyone out of the
delegated flow. Bearer tokens are unaffected because they are verified
without a store.

Concurrency:
  Request handlers run in a thread pool, so SessionStore guards its dict
  with a single threading.Lock. The map is small and lookups are O(1), so
  one lock is not a bottleneck. CredentialStore is read-only after
  construction and needs no lock.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from typing import Optional

from auth.models import Credential, DelegatedIdentity

# Reference accounts. Passwords: admin -> "admin123", user1 -> "user123".
DEMO_CREDENTIALS: tuple[Credential, ...] = (
    Credential(
        id=1,
        username="admin",
        hashed_password="$2a$10$PjX0.82.3nj1DaU6NIT69.TPw0tFIcInCLmoIliTh6G0tarecAFXu",
        email="admin@example.com",
    ),
    Credential(
        id=2,
        username="user1",
        hashed_password="$2a$10$RUvcffqE1ajH4Akl3jekjOninMA/JTkuSrVWbsxSinfCS5T8XT/0C",
        email="user1@example.com",
    ),
)


class SessionStore:
    """Maps opaque session IDs to the DelegatedIdentity that logged in.

    ttl_seconds=None keeps entries until delete() or process restart. With a
    TTL, an entry older than ttl_seconds is treated as absent by get() and
    removed by purge_expired().

    Usage:
        store = SessionStore(ttl_seconds=86400)
        store.put(session_id, identity)
        identity = store.get(session_id)   # None if absent or expired
        store.delete(session_id)           # no-op if absent
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[DelegatedIdentity, float]] = {}

    def put(self, session_id: str, identity: DelegatedIdentity) -> None:
        """Store identity under session_id, replacing any existing entry."""
        with self._lock:
            self._entries[session_id] = (identity, self._clock())

    def get(self, session_id: str) -> Optional[DelegatedIdentity]:
        """Return the identity for session_id if it exists and hasn't expired."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            identity, created_at = entry
            if self._is_expired(created_at, self._clock()):
                del self._entries[session_id]
                return None
            return identity

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def purge_expired(self) -> int:
        """Delete all entries older than the TTL. Returns number of entries removed."""
        if self.ttl is None:
            return 0
        now = self._clock()
        with self._lock:
            stale = [sid for sid, (_, created_at) in self._entries.items() if self._is_expired(created_at, now)]
            for sid in stale:
                del self._entries[sid]
        return len(stale)

    def _is_expired(self, created_at: float, now: float) -> bool:
        return self.ttl is not None and now - created_at >= self.ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CredentialStore:
    """Read-only registry of local accounts, keyed by exact username."""

    def __init__(self, credentials: Iterable[Credential] = ()) -> None:
        self._by_username: dict[str, Credential] = {}
        for credential in credentials:
            if credential.username in self._by_username:
                raise ValueError(f"Duplicate username: {credential.username!r}")
            self._by_username[credential.username] = credential

    def get_by_username(self, username: str) -> Optional[Credential]:
        """Look up a credential by exact username (case-sensitive). Returns None if not found."""
        return self._by_username.get(username)

    def __len__(self) -> int:
        return len(self._by_username)
