"""Tests for TokenSigner and claim encoding."""

import json
from datetime import datetime, timezone

import jwt
import pytest

from gcpjwt.errors import SigningFailed
from gcpjwt.signing import TokenSigner, encode_claims
from gcpjwt.verification import base_algorithm


class LocalSigner:
    def __init__(self, private_key, key_id="local"):
        self._key = private_key
        self._key_id = key_id
        self.calls = 0

    def sign(self, signing_input):
        self.calls += 1
        return base_algorithm("RS256").sign(signing_input, self._key), self._key_id


def test_encode_claims_converts_datetimes():
    exp = datetime(2030, 1, 1, tzinfo=timezone.utc)
    payload = json.loads(encode_claims({"sub": "x", "exp": exp, "custom": "keep"}))
    assert payload == {"sub": "x", "exp": 1893456000, "custom": "keep"}


def test_encode_claims_is_compact():
    assert encode_claims({"a": 1, "b": "c"}) == b'{"a":1,"b":"c"}'


def test_sign_produces_standard_jws(rsa_key):
    remote = LocalSigner(rsa_key)
    token = TokenSigner(remote, default_headers={"kid": "k1"}).sign({"sub": "x"}, headers={"x-trace": "1"})

    assert remote.calls == 1
    header = jwt.get_unverified_header(token)
    assert header["alg"] == "RS256"
    assert header["kid"] == "k1"
    assert header["x-trace"] == "1"
    assert jwt.decode(token, rsa_key.public_key(), algorithms=["RS256"]) == {"sub": "x"}


def test_per_call_headers_override_defaults(rsa_key):
    token = TokenSigner(LocalSigner(rsa_key), default_headers={"kid": "k1"}).sign({}, headers={"kid": "k2"})
    assert jwt.get_unverified_header(token)["kid"] == "k2"


def test_remote_failure_propagates():
    class Broken:
        def sign(self, signing_input):
            raise SigningFailed("remote down")

    with pytest.raises(SigningFailed):
        TokenSigner(Broken()).sign({"sub": "x"})
