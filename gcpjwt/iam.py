"""
Sign and verify JWTs with a service account's Google-managed keys.

Background:
    The IAM Credentials API can sign on behalf of a service account without
    us ever holding its private key:

    * ``signBlob`` signs arbitrary bytes. We build ``header.payload`` locally
      and ask IAM for the RS256 signature.
    * ``signJwt`` takes the claims JSON and returns a complete JWT; IAM
      writes its own header (including ``kid``).

    Either way the matching public certificates are published per account
    and verified through ``KeyResolver`` + the shared ``KeyStore``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import iam_credentials_v1

from .certs import CertificateFetcher
from .config import IAMConfig, IAMType
from .errors import MissingConfig, SigningFailed
from .keys import KeyCandidates
from .keystore import KeyStore
from .resolver import KeyResolver
from .settings import Settings, get_settings
from .signing import TokenSigner, encode_claims
from .verification import TokenVerifier

logger = logging.getLogger(__name__)


def _resource_name(service_account: str) -> str:
    # "-" lets the API infer the project; it rejects any other value.
    return f"projects/-/serviceAccounts/{service_account}"


class _IAMClientMixin:
    _config: IAMConfig
    _client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._config.iam_client or iam_credentials_v1.IAMCredentialsClient()
        return self._client


class IAMBlobSigner(_IAMClientMixin):
    """``RemoteSigner`` backed by the IAM ``signBlob`` API."""

    def __init__(self, config: IAMConfig) -> None:
        self._config = config

    def sign(self, signing_input: bytes) -> tuple[bytes, str]:
        try:
            resp = self.client.sign_blob(
                name=_resource_name(self._config.service_account),
                payload=signing_input,
            )
        except google_exceptions.GoogleAPIError as e:
            logger.warning("signBlob failed: %s", type(e).__name__)
            raise SigningFailed("IAM signBlob request failed") from e
        if not resp.signed_blob:
            raise SigningFailed("IAM signBlob returned an empty signature")
        self._config.record_key_id(resp.key_id)
        return resp.signed_blob, resp.key_id


class IAMJwtSigner(_IAMClientMixin):
    """
    Token signer backed by the IAM ``signJwt`` API.

    IAM builds the header itself, so ``headers`` passed to ``sign`` are
    ignored; the ``kid`` it used is still recorded on the config.
    """

    def __init__(self, config: IAMConfig) -> None:
        self._config = config

    def sign(self, claims: Mapping[str, Any], headers: dict[str, Any] | None = None) -> str:
        try:
            resp = self.client.sign_jwt(
                name=_resource_name(self._config.service_account),
                payload=encode_claims(claims).decode("utf-8"),
            )
        except google_exceptions.GoogleAPIError as e:
            logger.warning("signJwt failed: %s", type(e).__name__)
            raise SigningFailed("IAM signJwt request failed") from e
        if not resp.signed_jwt:
            raise SigningFailed("IAM signJwt returned an empty token")
        self._config.record_key_id(resp.key_id)
        return resp.signed_jwt


def iam_token_signer(config: IAMConfig) -> TokenSigner | IAMJwtSigner:
    """Pick the token signer for ``config.iam_type``."""
    if config.iam_type == IAMType.BLOB:
        return TokenSigner(IAMBlobSigner(config), algorithm="RS256")
    if config.iam_type == IAMType.JWT:
        return IAMJwtSigner(config)
    raise MissingConfig(f"Unknown IAM type `{config.iam_type}`")


class IAMVerifier(TokenVerifier):
    """
    Verifies RS256 tokens signed by a service account through IAM.

    Public certificates are cached in ``key_store`` when the config enables
    caching. Pass one store to every verifier in the process so accounts
    are fetched once, not once per verifier.
    """

    def __init__(
        self,
        config: IAMConfig,
        key_store: KeyStore | None = None,
        *,
        fetcher: CertificateFetcher | None = None,
        leeway: int | float = 0,
    ) -> None:
        super().__init__(algorithm="RS256", leeway=leeway)
        self._config = config
        self._resolver = KeyResolver(
            fetcher or CertificateFetcher(session=config.http_client),
            key_store if key_store is not None else KeyStore(),
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, key_store: KeyStore | None = None) -> IAMVerifier:
        """Verifier for ``GCPJWT_SERVICE_ACCOUNT`` allowing ``GCPJWT_CLOCK_SKEW_SECONDS`` of leeway."""
        settings = settings or get_settings()
        return cls(IAMConfig.from_settings(settings), key_store, leeway=settings.clock_skew_seconds)

    @property
    def service_account(self) -> str:
        return self._config.service_account

    def select_key(self, header: dict[str, Any]) -> KeyCandidates:
        kid = header.get("kid")
        keys = self._resolver.resolve(
            self._config.service_account,
            kid if isinstance(kid, str) else None,
            cache_enabled=self._config.enable_cache,
            cache_expiration=self._config.cache_expiration,
            timeout=self._config.http_timeout,
        )
        return KeyCandidates(tuple(keys))


def sign_claims(config: IAMConfig, claims: Mapping[str, Any]) -> str:
    """Convenience: sign ``claims`` with whichever IAM API ``config`` selects."""
    return iam_token_signer(config).sign(claims)

