"""
Access-token revocation.

Logout puts the presented token into a revocation store which every
authenticated request consults. The default store lives in process memory, so
revocations are not shared between server processes; multi-process
deployments should install a shared implementation (a keyed store with TTL)
through set_revocation_store() at startup.
"""
from __future__ import annotations

import abc
import threading
import time
from typing import Dict, Optional


class RevocationStore(abc.ABC):
    @abc.abstractmethod
    def revoke(self, token: str, expires_at: Optional[float] = None) -> None:
        """Revoke token until expires_at (unix seconds); forever when None."""

    @abc.abstractmethod
    def is_revoked(self, token: str) -> bool:
        ...


class InMemoryRevocationStore(RevocationStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Optional[float]] = {}

    def revoke(self, token: str, expires_at: Optional[float] = None) -> None:
        with self._lock:
            self._entries[token] = expires_at
            self._purge_expired(time.time())

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            if token not in self._entries:
                return False
            expires_at = self._entries[token]
            if expires_at is not None and expires_at <= time.time():
                # the token itself has expired; decoding rejects it anyway
                del self._entries[token]
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        expired = [t for t, exp in self._entries.items() if exp is not None and exp <= now]
        for t in expired:
            del self._entries[t]


_store: RevocationStore = InMemoryRevocationStore()


def get_revocation_store() -> RevocationStore:
    return _store


def set_revocation_store(store: RevocationStore) -> None:
    global _store
    _store = store
