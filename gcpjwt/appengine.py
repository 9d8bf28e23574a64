"""
Sign and verify with the App Engine app-identity service.

The platform signs bytes with a key unique to the application and lists its
current public certificates. The platform already caches those, so nothing
here goes through the KeyStore: every verification asks the service for the
current certificates and tries them.
"""

from __future__ import annotations

import logging
from typing import Any

from .certs import load_public_key
from .errors import CertificateFetchFailed, MissingConfig, SigningFailed
from .keys import KeyCandidates
from .resolver import select_candidates
from .signing import TokenSigner
from .verification import TokenVerifier

logger = logging.getLogger(__name__)

APP_IDENTITY_ACCOUNT = "APPENGINE"


def _default_service() -> Any:
    try:
        from google.appengine.api import app_identity
    except ImportError as e:
        raise MissingConfig("App Engine bundled services are not available; pass an app identity service") from e
    return app_identity


class AppIdentitySigner:
    """``RemoteSigner`` backed by ``app_identity.sign_blob``."""

    def __init__(self, service: Any = None) -> None:
        self._service = service

    def sign(self, signing_input: bytes) -> tuple[bytes, str]:
        service = self._service or _default_service()
        try:
            key_name, signature = service.sign_blob(signing_input)
        except Exception as e:
            logger.warning("App identity sign_blob failed: %s", type(e).__name__)
            raise SigningFailed("App identity signing failed") from e
        return signature, key_name


def app_identity_token_signer(service: Any = None) -> TokenSigner:
    return TokenSigner(AppIdentitySigner(service), algorithm="RS256")


class AppIdentityVerifier(TokenVerifier):
    """Verifies RS256 tokens signed by this application's app identity."""

    def __init__(self, service: Any = None, *, leeway: int | float = 0) -> None:
        super().__init__(algorithm="RS256", leeway=leeway)
        self._service = service

    def select_key(self, header: dict[str, Any]) -> KeyCandidates:
        service = self._service or _default_service()
        try:
            published = service.get_public_certificates()
            certs = {c.key_name: load_public_key(c.x509_certificate_pem) for c in published}
        except ValueError as e:
            raise CertificateFetchFailed("Could not parse app identity certificates") from e
        except Exception as e:
            logger.info("App identity certificate lookup failed: %s", type(e).__name__)
            raise CertificateFetchFailed("Could not list app identity certificates") from e

        kid = header.get("kid")
        keys = select_candidates(certs, kid if isinstance(kid, str) else None, account=APP_IDENTITY_ACCOUNT)
        return KeyCandidates(tuple(keys))
