"""Per-call signing and verification configuration."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import requests

from .errors import MissingConfig
from .settings import Settings, get_settings


class IAMType(str, Enum):
    """Which IAM Credentials API a config is meant for."""

    BLOB = "blob"
    JWT = "jwt"


@dataclass
class IAMConfig:
    """
    Configuration for the IAM ``signBlob`` / ``signJwt`` strategies.

    Fields:
        service_account: Email or unique id of the service account that signs.
        enable_cache: Keep fetched public certificates in the shared KeyStore.
        cache_expiration: Fallback cache lifetime in seconds, used only when the
            certificate endpoint sends no usable caching headers. 0 disables it.
            Google recommends no more than 24 hours.
        iam_type: Which signing API this config is meant for.
        http_client: Session used to fetch certificates; plain ``requests`` otherwise.
        iam_client: Pre-built ``IAMCredentialsClient``; a default one otherwise.
        http_timeout: Seconds before a certificate fetch is abandoned.

    The last key id used by a signer is kept under a lock, since one config
    may be shared by concurrent signing calls.
    """

    service_account: str
    enable_cache: bool = True
    cache_expiration: float = 0.0
    iam_type: IAMType = IAMType.BLOB
    http_client: requests.Session | None = None
    iam_client: Any = None
    http_timeout: float | None = 10.0

    _last_key_id: str = field(default="", init=False, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def key_id(self) -> str:
        """
        Key id of the last signing call made with this config.

        The signJwt API sets its own header, so this is a helper for callers
        that want to add a ``kid`` header to signBlob tokens.
        """
        with self._lock:
            return self._last_key_id

    def record_key_id(self, key_id: str) -> None:
        with self._lock:
            self._last_key_id = key_id

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> IAMConfig:
        settings = settings or get_settings()
        if not settings.service_account:
            raise MissingConfig("GCPJWT_SERVICE_ACCOUNT must be set")
        return cls(
            service_account=settings.service_account.strip(),
            enable_cache=settings.enable_cache,
            cache_expiration=settings.cache_expiration_seconds,
            iam_type=IAMType(settings.iam_type),
            http_timeout=settings.http_timeout_seconds,
        )


@dataclass(frozen=True)
class KMSConfig:
    """
    Configuration for the Cloud KMS strategy.

    ``key_path`` is a key *version* resource name:
    ``projects/*/locations/*/keyRings/*/cryptoKeys/*/cryptoKeyVersions/*``.
    Do not change it on a live verifier; build a new one instead.
    """

    key_path: str
    kms_client: Any = field(default=None, compare=False)

    @property
    def key_id(self) -> str:
        """SHA-1 hex digest of the key path, used as the ``kid`` header hint."""
        return hashlib.sha1(self.key_path.encode("utf-8")).hexdigest()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> KMSConfig:
        settings = settings or get_settings()
        if not settings.key_path:
            raise MissingConfig("GCPJWT_KEY_PATH must be set")
        return cls(key_path=settings.key_path.strip())
