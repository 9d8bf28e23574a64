"""
Self-signed access tokens for service-to-service calls.

This is not an OAuth flow: the configured service account signs a short-lived
JWT (through IAM) asserting its own identity to ``audience``. Pair it with
``gcpjwt.middleware.ServiceTokenGuard`` on the receiving side.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import IAMConfig
from .iam import iam_token_signer

# Refresh this many seconds before the token actually expires.
EXPIRY_DELTA = 10.0


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    expiry: float
    token_type: str = "Bearer"

    def valid(self, now: float) -> bool:
        return bool(self.access_token) and now < self.expiry - EXPIRY_DELTA

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class JWTAccessTokenSource:
    """
    Hands out a signed JWT, re-signing only once the current one is near expiry.

    The first token is signed by the constructor, which raises ``SigningFailed``
    or ``MissingConfig`` right away when IAM cannot sign.

    Claims: ``iss`` and ``sub`` are the service account, ``aud`` is the given
    audience, ``iat``/``nbf`` are now and ``exp`` is now + ``lifetime``.
    """

    def __init__(
        self,
        config: IAMConfig,
        audience: str,
        lifetime: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._audience = audience
        self._lifetime = lifetime
        self._clock = clock
        self._signer = iam_token_signer(config)
        self._lock = threading.Lock()
        self._token = self._new_token(clock())

    def _new_token(self, now: float) -> AccessToken:
        issued = int(now)
        exp = issued + int(self._lifetime)
        claims = {
            "iss": self._config.service_account,
            "sub": self._config.service_account,
            "aud": self._audience,
            "iat": issued,
            "nbf": issued,
            "exp": exp,
        }
        return AccessToken(access_token=self._signer.sign(claims), expiry=float(exp))

    def token(self) -> AccessToken:
        now = self._clock()
        with self._lock:
            if not self._token.valid(now):
                self._token = self._new_token(now)
            return self._token
