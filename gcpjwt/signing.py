"""Build signed tokens whose signature comes from a remote signer."""

from __future__ import annotations

import json
from calendar import timegm
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .keys import RemoteSigner, SigningContext
from .verification import build_jws

_TIME_CLAIMS = ("exp", "iat", "nbf")


def encode_claims(claims: Mapping[str, Any]) -> bytes:
    """Compact JSON payload; datetime ``exp``/``iat``/``nbf`` become epoch seconds."""
    payload = dict(claims)
    for name in _TIME_CLAIMS:
        value = payload.get(name)
        if isinstance(value, datetime):
            payload[name] = timegm(value.utctimetuple())
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class TokenSigner:
    """
    Signs claims as a compact JWS using ``remote`` for the signature.

    The header carries the standard ``alg`` (RS256, ES256...) so any JOSE
    library can verify the result with the matching public key.
    """

    def __init__(
        self,
        remote: RemoteSigner,
        algorithm: str = "RS256",
        default_headers: dict[str, Any] | None = None,
    ) -> None:
        self._remote = remote
        self._alg = algorithm
        self._default_headers = dict(default_headers or {})
        self._jws = build_jws(algorithm)

    @property
    def algorithm(self) -> str:
        return self._alg

    def sign(self, claims: Mapping[str, Any], headers: dict[str, Any] | None = None) -> str:
        return self._jws.encode(
            encode_claims(claims),
            key=SigningContext(self._remote),
            algorithm=self._alg,
            headers={**self._default_headers, **(headers or {})} or None,
        )
