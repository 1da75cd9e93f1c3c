"""Signed Web Bundle Ids.

id = lowercase(base32(raw public key || 3-byte key type suffix)), RFC 4648 alphabet,
padding stripped. The isolated app origin is ``isolated-app://<id>/``.
"""
from __future__ import annotations

import base64
from typing import Union

from ..cbor.codec import DEFAULT_CODEC, CborCodec
from .integrity_block import parse_integrity_block
from .keys import KeyType, PrivateKey, PublicKey, check_is_valid_key, get_raw_public_key, is_private_key

ISOLATED_APP_SCHEME = "isolated-app://"

_SUFFIXES = {
    KeyType.ED25519: b"\x00\x01\x02",
    KeyType.ECDSA_P256: b"\x00\x02\x02",
}


class WebBundleId:
    def __init__(self, key: Union[PublicKey, PrivateKey]):
        if is_private_key(key):
            key = key.public_key()
        self.key_type = check_is_valid_key("public", key)
        self.key = key

    @property
    def suffix(self) -> bytes:
        return _SUFFIXES[self.key_type]

    def serialize(self) -> str:
        encoded = base64.b32encode(get_raw_public_key(self.key) + self.suffix).decode("ascii")
        return encoded.rstrip("=").lower()

    def serialize_with_isolated_web_app_origin(self) -> str:
        return f"{ISOLATED_APP_SCHEME}{self.serialize()}/"

    def __str__(self) -> str:
        return (
            f"Web Bundle ID: {self.serialize()}\n"
            f"Isolated Web App Origin: {self.serialize_with_isolated_web_app_origin()}"
        )


def get_web_bundle_id(key: Union[PublicKey, PrivateKey]) -> str:
    return WebBundleId(key).serialize()


def get_signed_web_bundle_id(signed_web_bundle: bytes, codec: CborCodec = DEFAULT_CODEC) -> str:
    """Read the web bundle id recorded in a signed bundle's (v2) integrity block."""
    block, _ = parse_integrity_block(signed_web_bundle, codec)
    return block.web_bundle_id


__all__ = [
    "ISOLATED_APP_SCHEME",
    "WebBundleId",
    "get_web_bundle_id",
    "get_signed_web_bundle_id",
]
