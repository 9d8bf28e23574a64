"""
Fetch a service account's public certificates and work out how long to cache them.

Background:
    Google publishes the public half of every service account key at
    ``https://www.googleapis.com/robot/v1/metadata/x509/<account>`` as a JSON
    object of ``key id -> PEM certificate``. Keys rotate, so the response
    carries standard HTTP caching headers that tell us how long the set stays
    valid. We treat ourselves as a *private* cache when reading them.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from datetime import timezone
from typing import Any
from urllib.parse import quote

import requests
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .errors import CertificateFetchFailed
from .keystore import CertificateSet, PublicKey

logger = logging.getLogger(__name__)

CERTIFICATE_URL = "https://www.googleapis.com/robot/v1/metadata/x509/"

# Cache-Control directive: name, optionally =token or ="quoted, list"
_DIRECTIVE = re.compile(r'([^\s=,]+)(?:\s*=\s*("[^"]*"|[^\s,]*))?')


@dataclass(frozen=True)
class CertificateResponse:
    """Parsed certificates plus the instant they stop being fresh (None = don't cache)."""

    certs: CertificateSet
    expires_at: float | None

    @property
    def cacheable(self) -> bool:
        return self.expires_at is not None


def load_public_key(pem: str | bytes) -> PublicKey:
    """
    Parse a PEM X.509 certificate or PEM public key into an RSA/EC public key.

    Raises ValueError for anything else.
    """
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        if b"-----BEGIN CERTIFICATE-----" in data:
            key = x509.load_pem_x509_certificate(data).public_key()
        else:
            key = serialization.load_pem_public_key(data)
    except UnsupportedAlgorithm as e:
        raise ValueError("unsupported key algorithm") from e
    if not isinstance(key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey)):
        raise ValueError(f"unsupported public key type {type(key).__name__}")
    return key


def parse_certificates(body: Any) -> dict[str, PublicKey]:
    """
    Convert a ``{kid: pem}`` JSON object into public keys.

    One bad entry fails the whole batch; a malformed response must not
    silently narrow the set of keys we verify against.
    """
    if not isinstance(body, dict):
        raise CertificateFetchFailed("Certificate response is not a JSON object")
    certs: dict[str, PublicKey] = {}
    for key_id, pem in body.items():
        if not isinstance(pem, str):
            raise CertificateFetchFailed(f"Certificate `{key_id}` is not a PEM string")
        try:
            certs[key_id] = load_public_key(pem)
        except ValueError as e:
            raise CertificateFetchFailed(f"Could not parse certificate `{key_id}`") from e
    return certs


def _parse_cache_control(value: str) -> dict[str, str | None]:
    directives: dict[str, str | None] = {}
    for match in _DIRECTIVE.finditer(value):
        name, arg = match.group(1), match.group(2)
        directives[name.lower()] = arg.strip('"') if arg is not None else None
    return directives


def _parse_seconds(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _parse_http_date(value: str | None) -> float | None:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def freshness_expiry(headers: Mapping[str, str], now: float) -> float | None:
    """
    Expiration instant from ``Cache-Control`` / ``Expires`` for a private cache.

    Returns None when the headers give no freshness lifetime. ``max-age``
    wins over ``Expires``; ``s-maxage`` only applies to shared caches.
    """
    directives = _parse_cache_control(headers.get("Cache-Control") or "")
    # no-cache="field" only restricts those fields; a bare no-cache has no freshness.
    if "no-store" in directives or ("no-cache" in directives and directives["no-cache"] is None):
        return None

    max_age = _parse_seconds(directives.get("max-age"))
    if max_age is not None:
        age = _parse_seconds(headers.get("Age")) or 0
        return now + max_age - age

    raw_expires = headers.get("Expires")
    if raw_expires is None:
        return None
    expires = _parse_http_date(raw_expires)
    if expires is None:
        # Invalid Expires means "already expired".
        return now
    date = _parse_http_date(headers.get("Date"))
    if date is None:
        return expires
    return now + (expires - date)


def compute_expiration(headers: Mapping[str, str], now: float, fallback: float = 0.0) -> float | None:
    """
    Decide when a fetched certificate set expires.

    Uses the HTTP caching headers when they give a future instant, otherwise
    ``now + fallback`` when a fallback is configured. None means the response
    must not be cached at all; ``no-store`` is never overridden by the fallback.
    """
    if "no-store" in _parse_cache_control(headers.get("Cache-Control") or ""):
        return None
    expires = freshness_expiry(headers, now)
    if expires is not None and expires > now:
        return expires
    if fallback and fallback > 0:
        return now + fallback
    return None


class CertificateFetcher:
    """
    Fetches public certificates for one account per call.

    Makes exactly one HTTP request per ``fetch`` and never retries; retry
    policy belongs to the caller. ``timeout`` is passed straight to requests
    so a caller's deadline also bounds the fetch; None adds no timeout of
    its own (``IAMConfig.http_timeout`` supplies the 10 s default).
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        base_url: str = CERTIFICATE_URL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self._base_url = base_url
        self._clock = clock

    def url_for(self, account: str) -> str:
        return self._base_url + quote(account, safe="@")

    def fetch(
        self,
        account: str,
        *,
        cache_expiration: float = 0.0,
        timeout: float | None = None,
    ) -> CertificateResponse:
        client = self._session if self._session is not None else requests
        url = self.url_for(account)
        try:
            resp = client.get(url, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.info("Certificate fetch failed account=%s error=%s", account, type(e).__name__)
            raise CertificateFetchFailed(f"Could not fetch certificates for account `{account}`") from e

        try:
            body = resp.json()
        except ValueError as e:
            logger.info("Certificate response was not JSON account=%s", account)
            raise CertificateFetchFailed("Certificate response is not valid JSON") from e

        certs = parse_certificates(body)
        expires_at = compute_expiration(resp.headers, self._clock(), cache_expiration)
        logger.debug(
            "Fetched %d certificate(s) account=%s cacheable=%s",
            len(certs),
            account,
            expires_at is not None,
        )
        return CertificateResponse(certs=certs, expires_at=expires_at)

