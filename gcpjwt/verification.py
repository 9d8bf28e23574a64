"""
Signature verification strategy shared by every backend.

Background:
    PyJWT splits a token, picks an ``Algorithm`` object by the header's
    ``alg`` and hands it whatever ``key`` the caller passed. Our keys live in
    Google Cloud, so the algorithm registered here (``RemoteAlgorithm``)
    understands the key variants from ``gcpjwt.keys``:

    * ``SigningContext`` -> the signature is produced by a remote signer.
    * ``SingleKey`` / ``KeyCandidates`` -> the signature is checked locally
      against one key, or each candidate in turn until one matches.

    Each signer/verifier owns its own ``jwt.PyJWS`` with only its algorithm
    registered; nothing is registered on PyJWT's global instance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, NoReturn

import jwt
from jwt.algorithms import Algorithm, get_default_algorithms

from .errors import GcpJwtError, InvalidKey, InvalidKeyType, NoCandidateKeys, ValidationError
from .keys import KeyCandidates, NoKey, SigningContext, SingleKey, VerificationKey
from .keystore import PublicKey

logger = logging.getLogger(__name__)


def base_algorithm(alg: str) -> Algorithm:
    """Return PyJWT's local implementation of ``alg`` (e.g. RS256, ES384)."""
    try:
        return get_default_algorithms()[alg]
    except KeyError as e:
        raise NotImplementedError(f"Algorithm `{alg}` is not supported") from e


def verify_any(
    signing_input: bytes,
    signature: bytes,
    candidates: Iterable[PublicKey],
    algorithm: Algorithm,
) -> None:
    """
    Succeed if any candidate key verifies ``signature``.

    Candidates are tried in iteration order; that order carries no meaning.
    When none match, the *last* candidate's error is raised; it does not say
    which key came closest.
    """
    keys = list(candidates)
    if not keys:
        raise NoCandidateKeys("No candidate keys to verify the signature with")

    last_error: Exception = jwt.InvalidSignatureError("Signature verification failed")
    for key in keys:
        try:
            prepared = algorithm.prepare_key(key)
        except (TypeError, ValueError, jwt.PyJWTError) as e:
            last_error = InvalidKey("Candidate key does not fit the token algorithm")
            last_error.__cause__ = e
            continue
        if algorithm.verify(signing_input, prepared, signature):
            return
        last_error = jwt.InvalidSignatureError("Signature verification failed")
    raise last_error


class RemoteAlgorithm(Algorithm):
    """PyJWT algorithm that signs remotely and verifies against key variants."""

    def __init__(self, base: Algorithm) -> None:
        self._base = base

    def prepare_key(self, key: Any) -> VerificationKey:
        if isinstance(key, (SingleKey, KeyCandidates, SigningContext)):
            return key
        if isinstance(key, NoKey):
            raise InvalidKey("No key provided")
        raise InvalidKeyType(f"Expected a key variant, got {type(key).__name__}")

    def sign(self, msg: bytes, key: Any) -> bytes:
        if not isinstance(key, SigningContext):
            raise InvalidKeyType("Signing requires a SigningContext")
        signature, _ = key.signer.sign(msg)
        return signature

    def verify(self, msg: bytes, key: Any, sig: bytes) -> bool:
        if isinstance(key, SingleKey):
            candidates: Iterable[PublicKey] = [key.key]
        elif isinstance(key, KeyCandidates):
            candidates = key.keys
        else:
            raise InvalidKeyType("Verification requires SingleKey or KeyCandidates")
        verify_any(msg, sig, candidates, self._base)
        return True

    @staticmethod
    def to_jwk(key_obj: Any, as_dict: bool = False) -> NoReturn:
        raise NotImplementedError("Remote keys cannot be exported as a JWK")

    @staticmethod
    def from_jwk(jwk: Any) -> NoReturn:
        raise NotImplementedError("Remote keys cannot be loaded from a JWK")


def build_jws(alg: str, base: Algorithm | None = None) -> jwt.PyJWS:
    """A private ``PyJWS`` with only ``alg`` registered, backed by ``RemoteAlgorithm``."""
    jws = jwt.PyJWS(algorithms=[])
    jws.register_algorithm(alg, RemoteAlgorithm(base or base_algorithm(alg)))
    return jws


class TokenVerifier:
    """
    Verifies a token's signature with remotely published keys, then its claims.

    Subclasses implement ``select_key`` to turn the unverified header into a
    key variant (one key, or every candidate). Errors from that step
    (``KeyNotFound``, ``CertificateFetchFailed``...) propagate unchanged so
    callers can tell "could not verify" from "invalid"; PyJWT errors are
    mapped to ``ValidationError``. Catch ``GcpJwtError`` for a plain yes/no.
    """

    def __init__(self, algorithm: str = "RS256", leeway: int | float = 0) -> None:
        self._alg = algorithm
        self._jws = build_jws(algorithm)
        self._leeway = leeway

    @property
    def algorithm(self) -> str:
        return self._alg

    @property
    def leeway(self) -> int | float:
        """Seconds of clock skew tolerated on ``exp``/``nbf``/``iat``."""
        return self._leeway

    def select_key(self, header: dict[str, Any]) -> VerificationKey:
        raise NotImplementedError

    def verify(
        self,
        token: str,
        *,
        audience: str | Iterable[str] | None = None,
        issuer: str | None = None,
    ) -> dict[str, Any]:
        """
        Verify ``token`` and return its claims.

        ``exp``/``nbf``/``iat`` are always checked when present; ``aud`` and
        ``iss`` only when the caller passes an expected value.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            logger.info("Token header unreadable: %s", type(e).__name__)
            raise ValidationError("Invalid token") from e

        key = self.select_key(header)

        try:
            self._jws.decode_complete(token, key=key, algorithms=[self._alg])
            return jwt.decode(
                token,
                audience=audience,
                issuer=issuer,
                leeway=self._leeway,
                options={
                    "verify_signature": False,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iat": True,
                    "verify_iss": issuer is not None,
                    "verify_aud": audience is not None,
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise ValidationError("Token expired") from e
        except jwt.InvalidIssuerError as e:
            logger.info("Token invalid issuer")
            raise ValidationError("Invalid token: issuer") from e
        except jwt.InvalidAudienceError as e:
            logger.info("Token invalid audience")
            raise ValidationError("Invalid token: audience") from e
        except jwt.InvalidSignatureError as e:
            logger.info("Token signature did not verify")
            raise ValidationError("Invalid token: signature") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise ValidationError("Invalid token") from e

    def is_valid(self, token: str, **kwargs: Any) -> bool:
        """Coarse valid/invalid answer; any error counts as invalid."""
        try:
            self.verify(token, **kwargs)
        except GcpJwtError:
            return False
        return True
