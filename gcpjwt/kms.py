"""
Sign and verify JWTs with a Cloud KMS asymmetric key version.

A key *version* never changes its key pair, so its public key is fetched
once and kept for the life of the process; there is nothing to expire or
refresh. The ``kid`` hint for these tokens is the SHA-1 hex digest of the
key version path (see ``KMSConfig.key_id``).

Supported KMS algorithms:
    RS256  RSA_SIGN_PKCS1_{2048,3072,4096}_SHA256
    PS256  RSA_SIGN_PSS_{2048,3072,4096}_SHA256
    ES256  EC_SIGN_P256_SHA256
    ES384  EC_SIGN_P384_SHA384
"""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec
from google.api_core import exceptions as google_exceptions
from google.cloud import kms
from jwt.utils import der_to_raw_signature

from .certs import load_public_key
from .config import KMSConfig
from .errors import CertificateFetchFailed, KeyNotFound, SigningFailed
from .keys import SingleKey
from .keystore import PublicKey
from .signing import TokenSigner
from .verification import TokenVerifier

logger = logging.getLogger(__name__)

# JOSE alg -> digest field name in AsymmetricSignRequest
DIGESTS = {
    "RS256": "sha256",
    "PS256": "sha256",
    "ES256": "sha256",
    "ES384": "sha384",
}

# KMS returns ECDSA signatures DER encoded; JOSE wants raw r||s.
_EC_CURVES: dict[str, ec.EllipticCurve] = {
    "ES256": ec.SECP256R1(),
    "ES384": ec.SECP384R1(),
}


def _check_algorithm(algorithm: str) -> None:
    if algorithm not in DIGESTS:
        raise ValueError(f"Unsupported KMS algorithm `{algorithm}`; expected one of {sorted(DIGESTS)}")


def _kms_client() -> Any:
    """Cloud KMS client using Application Default Credentials."""
    return kms.KeyManagementServiceClient()


class KMSPublicKeyCache:
    """
    Fetch-once cache of KMS public keys, keyed by key version path.

    Never evicts. Two threads racing on a cold path may both fetch; the
    first stored key wins and is returned to both.
    """

    def __init__(self, client: Any = None) -> None:
        self._client = client
        self._keys: dict[str, PublicKey] = {}
        self._lock = threading.Lock()

    def _fetch(self, key_path: str) -> PublicKey:
        if self._client is None:
            self._client = _kms_client()
        try:
            resp = self._client.get_public_key(request={"name": key_path})
        except google_exceptions.GoogleAPIError as e:
            logger.info("KMS public key fetch failed error=%s", type(e).__name__)
            raise CertificateFetchFailed(f"Could not fetch public key for `{key_path}`") from e
        try:
            return load_public_key(resp.pem)
        except ValueError as e:
            raise CertificateFetchFailed(f"Could not parse public key for `{key_path}`") from e

    def get_or_fetch(self, key_path: str) -> PublicKey:
        with self._lock:
            key = self._keys.get(key_path)
        if key is not None:
            return key

        key = self._fetch(key_path)
        logger.debug("Fetched KMS public key key_path=%s", key_path)
        with self._lock:
            return self._keys.setdefault(key_path, key)


class KMSSigner:
    """``RemoteSigner`` backed by KMS ``AsymmetricSign``; always reports ``config.key_id``."""

    def __init__(self, config: KMSConfig, algorithm: str = "RS256") -> None:
        _check_algorithm(algorithm)
        self._config = config
        self._alg = algorithm
        self._client = config.kms_client

    def sign(self, signing_input: bytes) -> tuple[bytes, str]:
        if self._client is None:
            self._client = _kms_client()
        digest_name = DIGESTS[self._alg]
        digest = hashlib.new(digest_name, signing_input).digest()
        try:
            resp = self._client.asymmetric_sign(
                request={"name": self._config.key_path, "digest": {digest_name: digest}},
            )
        except google_exceptions.GoogleAPIError as e:
            logger.warning("KMS AsymmetricSign failed: %s", type(e).__name__)
            raise SigningFailed("KMS AsymmetricSign request failed") from e

        signature = resp.signature
        curve = _EC_CURVES.get(self._alg)
        if curve is not None:
            try:
                signature = der_to_raw_signature(signature, curve)
            except ValueError as e:
                raise SigningFailed("Could not parse ECDSA signature from KMS") from e
        return signature, self._config.key_id


def kms_token_signer(config: KMSConfig, algorithm: str = "RS256") -> TokenSigner:
    """Token signer for a KMS key version; the header carries ``kid=config.key_id``."""
    return TokenSigner(
        KMSSigner(config, algorithm),
        algorithm=algorithm,
        default_headers={"kid": config.key_id},
    )


class KMSVerifier(TokenVerifier):
    """
    Verifies tokens signed by one KMS key version.

    The public key is fetched when the verifier is built (through
    ``key_cache``) and reused for every token. There is exactly one key, so
    a ``kid`` that is not this key version's hash fails immediately.
    """

    def __init__(
        self,
        config: KMSConfig,
        key_cache: KMSPublicKeyCache | None = None,
        *,
        algorithm: str = "RS256",
        leeway: int | float = 0,
    ) -> None:
        _check_algorithm(algorithm)
        super().__init__(algorithm=algorithm, leeway=leeway)
        self._key_id = config.key_id
        cache = key_cache if key_cache is not None else KMSPublicKeyCache(config.kms_client)
        self._public_key = cache.get_or_fetch(config.key_path)

    def select_key(self, header: dict[str, Any]) -> SingleKey:
        if "kid" in header and header["kid"] != self._key_id:
            logger.info("Token kid does not match KMS key version")
            raise KeyNotFound("Unknown key id in token header")
        return SingleKey(self._public_key)
