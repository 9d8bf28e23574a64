"""Tests for the ServiceTokenGuard FastAPI dependency."""

import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from gcpjwt.certs import CertificateFetcher, CertificateResponse
from gcpjwt.config import IAMConfig
from gcpjwt.iam import IAMVerifier
from gcpjwt.middleware import ServiceTokenGuard

ACCOUNT = "caller@project.iam.gserviceaccount.com"


@pytest.fixture
def client(rsa_key):
    fetcher = MagicMock(spec=CertificateFetcher)
    fetcher.fetch.return_value = CertificateResponse(
        certs={"key-1": rsa_key.public_key()}, expires_at=time.time() + 3600
    )
    guard = ServiceTokenGuard(IAMVerifier(IAMConfig(ACCOUNT), fetcher=fetcher))
    app = FastAPI()

    @app.get("/internal/ping")
    def ping(request: Request, claims: dict = Depends(guard)):
        return {"sub": claims["sub"], "state": request.state.token_claims["iss"]}

    return TestClient(app)


def _token(private_key, **overrides):
    now = int(time.time())
    claims = {"iss": ACCOUNT, "sub": ACCOUNT, "aud": "https://testserver", "iat": now, "exp": now + 300}
    claims.update(overrides)
    return jwt.encode(claims, private_key, algorithm="RS256")


def test_missing_token_is_401(client):
    resp = client.get("/internal/ping")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication required"


def test_non_bearer_header_is_401(client):
    assert client.get("/internal/ping", headers={"Authorization": "Basic dXNlcjpwdw=="}).status_code == 401
    assert client.get("/internal/ping", headers={"Authorization": "Bearer "}).status_code == 401


def test_valid_token_is_let_through(client, rsa_key):
    resp = client.get("/internal/ping", headers={"Authorization": f"Bearer {_token(rsa_key)}"})
    assert resp.status_code == 200
    assert resp.json() == {"sub": ACCOUNT, "state": ACCOUNT}


def test_wrong_signer_is_403(client, other_rsa_key):
    resp = client.get("/internal/ping", headers={"Authorization": f"Bearer {_token(other_rsa_key)}"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Forbidden"


def test_wrong_audience_is_403(client, rsa_key):
    token = _token(rsa_key, aud="https://some-other-service")
    assert client.get("/internal/ping", headers={"Authorization": f"Bearer {token}"}).status_code == 403


def test_wrong_issuer_is_403(client, rsa_key):
    token = _token(rsa_key, iss="intruder@project.iam.gserviceaccount.com")
    assert client.get("/internal/ping", headers={"Authorization": f"Bearer {token}"}).status_code == 403


def test_garbage_token_is_403(client):
    assert client.get("/internal/ping", headers={"Authorization": "Bearer not.a.jwt"}).status_code == 403


def test_bearer_scheme_is_case_insensitive(client, rsa_key):
    token = _token(rsa_key)
    for scheme in ("bearer", "BEARER", "Bearer"):
        resp = client.get("/internal/ping", headers={"Authorization": f"{scheme} {token}"})
        assert resp.status_code == 200
