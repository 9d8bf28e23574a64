"""Exception taxonomy. Messages never include token contents or key material."""

from __future__ import annotations


class GcpJwtError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(GcpJwtError):
    """Raised when a token fails verification. Do not log the token."""


class KeyNotFound(ValidationError):
    """The token declares a key id that is not in the known key set."""


class NoCandidateKeys(ValidationError):
    """There were no keys to check the signature against."""


class CertificateFetchFailed(GcpJwtError):
    """Public certificates could not be fetched or parsed."""


class InvalidKeyType(GcpJwtError):
    """A key argument of the wrong type was passed to sign or verify."""


class InvalidKey(GcpJwtError):
    """The key argument is of a known type but cannot be used."""


class MissingConfig(GcpJwtError):
    """Required configuration could not be found."""


class SigningFailed(GcpJwtError):
    """The remote signing backend failed or returned a malformed result."""
