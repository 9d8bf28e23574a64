"""Pick the public key(s) a token may be verified with."""

from __future__ import annotations

import logging

from .certs import CertificateFetcher
from .errors import KeyNotFound, NoCandidateKeys
from .keystore import CertificateSet, KeyStore, PublicKey

logger = logging.getLogger(__name__)


def select_candidates(certs: CertificateSet, key_id: str | None, *, account: str) -> list[PublicKey]:
    """
    Exactly the declared key, or every key when none is declared.

    A token that names a key we do not have is treated as a failure, not a
    caching artifact, so there is no fallback to trying every key.
    """
    if key_id:
        key = certs.get(key_id)
        if key is None:
            logger.info("Declared key id not found account=%s", account)
            raise KeyNotFound(f"Could not find certificate for account `{account}` and the declared key id")
        return [key]

    candidates = list(certs.values())
    if not candidates:
        raise NoCandidateKeys(f"No certificates published for account `{account}`")
    return candidates


class KeyResolver:
    """
    Cache-then-fetch lookup of an account's public keys.

    Selection policy:
        See ``select_candidates``.

    An unknown key id or a failed verification never triggers a refetch
    against a live cache entry. Rotated keys are picked up when the entry
    expires, so a flood of bad tokens cannot force repeated fetches.
    """

    def __init__(self, fetcher: CertificateFetcher, key_store: KeyStore) -> None:
        self._fetcher = fetcher
        self._store = key_store

    def _certificates(
        self,
        account: str,
        *,
        cache_enabled: bool,
        cache_expiration: float,
        timeout: float | None,
    ) -> CertificateSet:
        if cache_enabled:
            cached = self._store.get(account)
            if cached is not None:
                logger.debug("Certificate cache hit account=%s", account)
                return cached
            logger.debug("Certificate cache miss account=%s", account)

        resp = self._fetcher.fetch(account, cache_expiration=cache_expiration, timeout=timeout)
        if cache_enabled and resp.cacheable and resp.certs:
            self._store.put(account, resp.certs, resp.expires_at)
        return resp.certs

    def resolve(
        self,
        account: str,
        key_id: str | None = None,
        *,
        cache_enabled: bool = True,
        cache_expiration: float = 0.0,
        timeout: float | None = None,
    ) -> list[PublicKey]:
        certs = self._certificates(
            account,
            cache_enabled=cache_enabled,
            cache_expiration=cache_expiration,
            timeout=timeout,
        )
        return select_candidates(certs, key_id, account=account)
