"""Tests for the App Engine app-identity strategy with a stand-in service."""

import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from gcpjwt.appengine import AppIdentitySigner, AppIdentityVerifier, app_identity_token_signer
from gcpjwt.errors import CertificateFetchFailed, KeyNotFound, SigningFailed


class FakeAppIdentity:
    def __init__(self, private_key, certs, key_name="app-key-1"):
        self._key = private_key
        self._certs = certs
        self._key_name = key_name

    def sign_blob(self, data):
        return self._key_name, self._key.sign(data, padding.PKCS1v15(), hashes.SHA256())

    def get_public_certificates(self):
        return [SimpleNamespace(key_name=name, x509_certificate_pem=pem) for name, pem in self._certs.items()]


@pytest.fixture
def service(rsa_key, other_rsa_key, cert_pem):
    return FakeAppIdentity(rsa_key, {"app-key-0": cert_pem(other_rsa_key), "app-key-1": cert_pem(rsa_key)})


def _claims():
    now = int(time.time())
    return {"iss": "my-app", "iat": now, "exp": now + 60}


def test_signer_returns_signature_and_key_name(service):
    signature, key_name = AppIdentitySigner(service).sign(b"header.payload")
    assert key_name == "app-key-1"
    assert len(signature) == 256


def test_round_trip_tries_every_certificate(service):
    token = app_identity_token_signer(service).sign(_claims())
    assert AppIdentityVerifier(service).verify(token, issuer="my-app")["iss"] == "my-app"


def test_declared_kid_selects_that_certificate(service):
    token = app_identity_token_signer(service).sign(_claims(), headers={"kid": "app-key-1"})
    assert AppIdentityVerifier(service).is_valid(token)

    unknown = app_identity_token_signer(service).sign(_claims(), headers={"kid": "app-key-9"})
    with pytest.raises(KeyNotFound):
        AppIdentityVerifier(service).verify(unknown)


def test_signing_failure_is_wrapped():
    service = MagicMock()
    service.sign_blob.side_effect = RuntimeError("quota exceeded")
    with pytest.raises(SigningFailed):
        AppIdentitySigner(service).sign(b"x")


def test_bad_certificate_listing_is_fetch_failure(rsa_key):
    service = FakeAppIdentity(rsa_key, {"app-key-1": "garbage"})
    token = jwt.encode(_claims(), rsa_key, algorithm="RS256")
    with pytest.raises(CertificateFetchFailed):
        AppIdentityVerifier(service).verify(token)
