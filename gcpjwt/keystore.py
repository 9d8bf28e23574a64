"""
In-memory, thread-safe cache of public certificates per account.

Each account maps to its whole certificate set plus an expiration instant.
Entries are never merged: a refresh replaces the previous set wholesale.
Expired entries read as a miss immediately and are physically removed by the
sweep that runs after every ``put``.

There is no invalidate/delete API and a verification failure never evicts an
entry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Union

from cryptography.hazmat.primitives.asymmetric import ec, rsa

logger = logging.getLogger(__name__)

PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]
CertificateSet = Mapping[str, PublicKey]


class KeyStore:
    """
    Account -> (CertificateSet, expires_at) cache.

    ``expires_at`` is epoch seconds, or None for an entry that never expires.
    Create one per process (or per verifier) and share it by reference.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[CertificateSet, float | None]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_live(self, expires_at: float | None, now: float) -> bool:
        return expires_at is None or now < expires_at

    def get(self, account: str) -> CertificateSet | None:
        """Return the live certificate set for ``account``, or None."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(account)
        if entry is None:
            return None
        certs, expires_at = entry
        if not self._is_live(expires_at, now):
            return None
        return certs

    def get_one(self, account: str, key_id: str) -> PublicKey | None:
        certs = self.get(account)
        if certs is None:
            return None
        return certs.get(key_id)

    def put(self, account: str, certs: Mapping[str, PublicKey], expires_at: float | None) -> None:
        """
        Replace the entry for ``account`` and sweep expired entries.

        An ``expires_at`` that is not in the future is skipped; callers should
        only store results that a fetch reported as cacheable.
        """
        now = self._clock()
        if expires_at is not None and expires_at <= now:
            logger.debug("Skipping cache write for already-expired certificates account=%s", account)
            return

        frozen = MappingProxyType(dict(certs))
        with self._lock:
            self._entries[account] = (frozen, expires_at)
            expired = [a for a, (_, exp) in self._entries.items() if not self._is_live(exp, now)]
            for a in expired:
                del self._entries[a]
        logger.debug("Cached %d certificate(s) account=%s swept=%d", len(frozen), account, len(expired))
