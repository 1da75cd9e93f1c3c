"""Signing strategies: who holds the private key and how data gets signed.

The signer only needs the capability ``{sign(bytes), get_public_key()}``, so keys
may live in memory, in hardware, or behind a remote KMS call. Both methods are
coroutines; remote implementations can await I/O without blocking other keys.
"""
from __future__ import annotations

import abc

from .keys import PrivateKey, PublicKey, check_is_valid_key, sign_with


class SigningStrategy(abc.ABC):
    @abc.abstractmethod
    async def sign(self, data: bytes) -> bytes:
        """Return the signature of ``data``."""

    @abc.abstractmethod
    async def get_public_key(self) -> PublicKey:
        """Return the public key matching the signing key."""


class ParsedKeySigningStrategy(SigningStrategy):
    """Simplest strategy: sign with an already parsed in-memory private key."""

    def __init__(self, private_key: PrivateKey):
        check_is_valid_key("private", private_key)
        self._private_key = private_key

    async def sign(self, data: bytes) -> bytes:
        return sign_with(self._private_key, data)

    async def get_public_key(self) -> PublicKey:
        return self._private_key.public_key()


__all__ = ["SigningStrategy", "ParsedKeySigningStrategy"]
