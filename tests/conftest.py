"""
Pytest fixtures for the test suite.

Keys are generated once per session (RSA generation is slow). HTTP is never
hit: certificate fetches get a MagicMock response built by ``make_response``.
"""
from __future__ import annotations

import datetime
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID


class FakeClock:
    """Callable clock for KeyStore / fetcher tests; advance it by hand."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _self_signed_pem(private_key) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "gcpjwt-test")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def cert_pem():
    """Factory: private key -> self-signed PEM certificate string."""
    return _self_signed_pem


@pytest.fixture(scope="session")
def public_pem():
    """Factory: private key -> PEM SubjectPublicKeyInfo string."""

    def _make(private_key) -> str:
        return (
            private_key.public_key()
            .public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
            .decode("ascii")
        )

    return _make


@pytest.fixture
def make_response():
    """Factory for a requests-like response with a JSON body and headers."""

    def _make(body, headers=None):
        resp = MagicMock()
        resp.headers = dict(headers or {})
        resp.json.return_value = body
        resp.raise_for_status.return_value = None
        return resp

    return _make
