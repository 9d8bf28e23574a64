"""
The key argument handed to a signing/verification strategy.

PyJWT passes an opaque ``key`` through to the algorithm. Instead of guessing
what that object is at runtime, callers wrap it in exactly one of these
variants and the strategy dispatches on the variant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, Union

from .keystore import PublicKey


class RemoteSigner(Protocol):
    """Anything that can sign bytes remotely and report the key id it used."""

    def sign(self, signing_input: bytes) -> tuple[bytes, str]: ...


@dataclass(frozen=True)
class NoKey:
    """Explicitly no key; always rejected."""


@dataclass(frozen=True)
class SingleKey:
    key: PublicKey


@dataclass(frozen=True)
class KeyCandidates:
    """Keys a verification may try, in no meaningful order."""

    keys: Sequence[PublicKey]


@dataclass(frozen=True)
class SigningContext:
    """Routes a signing call to a remote signer instead of a local private key."""

    signer: RemoteSigner


VerificationKey = Union[NoKey, SingleKey, KeyCandidates, SigningContext]
