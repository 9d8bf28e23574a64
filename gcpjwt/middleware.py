from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status

from .errors import GcpJwtError
from .iam import IAMVerifier

logger = logging.getLogger(__name__)


class ServiceTokenGuard:
    """
    FastAPI dependency that only lets through tokens signed by a service account.

    - Input: ``Authorization: Bearer <jwt>``
    - The issuer must be the verifier's service account.
    - The audience is ``audience`` if given, else ``https://<request host>``.
    - Missing token -> 401; anything that fails verification -> 403.

    Usage::

        guard = ServiceTokenGuard(IAMVerifier(config, key_store))
        app = FastAPI(dependencies=[Depends(guard)])

    The verified claims are returned and also stored on ``request.state.token_claims``.
    """

    def __init__(
        self,
        verifier: IAMVerifier,
        audience: str | None = None,
        *,
        authorization_header: str = "Authorization",
        bearer_prefix: str = "Bearer",
    ) -> None:
        self._verifier = verifier
        self._audience = audience
        self._header = authorization_header
        self._scheme = bearer_prefix.lower()

    def _expected_audience(self, request: Request) -> str:
        if self._audience:
            return self._audience
        return f"https://{request.headers.get('host', '')}"

    def __call__(self, request: Request) -> dict[str, Any]:
        # The auth scheme is case-insensitive (RFC 7235).
        scheme, _, token = (request.headers.get(self._header) or "").partition(" ")
        token = token.strip()
        if scheme.lower() != self._scheme or not token:
            logger.info("Missing bearer token path=%s method=%s", request.url.path, request.method)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

        try:
            claims = self._verifier.verify(
                token,
                audience=self._expected_audience(request),
                issuer=self._verifier.service_account,
            )
        except GcpJwtError as e:
            logger.info("Rejected service token path=%s error=%s", request.url.path, type(e).__name__)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from e

        request.state.token_claims = claims
        return claims
