"""
Sign and verify JWTs with keys that never leave Google Cloud.

Signing is delegated to IAM Credentials (signBlob / signJwt), Cloud KMS or the
App Engine app-identity service. Verification fetches the matching public
keys, caches them in a ``KeyStore`` per HTTP caching headers, and tries the
declared key (or every candidate when no ``kid`` is declared).

Create one ``KeyStore`` at startup and share it with every ``IAMVerifier``.
"""

from .config import IAMConfig, IAMType, KMSConfig
from .errors import (
    CertificateFetchFailed,
    GcpJwtError,
    InvalidKey,
    InvalidKeyType,
    KeyNotFound,
    MissingConfig,
    NoCandidateKeys,
    SigningFailed,
    ValidationError,
)
from .iam import IAMBlobSigner, IAMJwtSigner, IAMVerifier, iam_token_signer, sign_claims
from .keys import KeyCandidates, NoKey, SigningContext, SingleKey
from .keystore import KeyStore
from .kms import KMSPublicKeyCache, KMSSigner, KMSVerifier, kms_token_signer
from .signing import TokenSigner
from .verification import TokenVerifier, verify_any

__all__ = [
    "CertificateFetchFailed",
    "GcpJwtError",
    "IAMBlobSigner",
    "IAMConfig",
    "IAMJwtSigner",
    "IAMType",
    "IAMVerifier",
    "InvalidKey",
    "InvalidKeyType",
    "KMSConfig",
    "KMSPublicKeyCache",
    "KMSSigner",
    "KMSVerifier",
    "KeyCandidates",
    "KeyNotFound",
    "KeyStore",
    "MissingConfig",
    "NoCandidateKeys",
    "NoKey",
    "SigningContext",
    "SigningFailed",
    "SingleKey",
    "TokenSigner",
    "TokenVerifier",
    "ValidationError",
    "iam_token_signer",
    "kms_token_signer",
    "sign_claims",
    "verify_any",
]
