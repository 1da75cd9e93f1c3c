"""Key handling for integrity block signing.

Supported key types:
  - Ed25519
  - ECDSA P-256 (signatures use SHA-256, DER encoded)

Raw public key bytes (as stored in signature attributes and Web Bundle Ids):
  Ed25519:    the 32-byte key, i.e. the last 32 bytes of its SubjectPublicKeyInfo DER
  ECDSA P-256: the 33-byte compressed point derived from the 65-byte uncompressed
               point that ends its SubjectPublicKeyInfo DER
"""
from __future__ import annotations

import enum
from typing import Callable, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from .. import config
from ..errors import SignatureNotVerifiable, UnsupportedKeyType

PublicKey = Union[ed25519.Ed25519PublicKey, ec.EllipticCurvePublicKey]
PrivateKey = Union[ed25519.Ed25519PrivateKey, ec.EllipticCurvePrivateKey]


class KeyType(enum.Enum):
    ED25519 = "ed25519"
    ECDSA_P256 = "ecdsa-p256"

    @property
    def public_key_attribute_name(self) -> str:
        return _ATTRIBUTE_NAMES[self]


_ATTRIBUTE_NAMES = {
    KeyType.ED25519: "ed25519PublicKey",
    KeyType.ECDSA_P256: "ecdsaP256SHA256PublicKey",
}
ED25519_RAW_LENGTH = 32
P256_UNCOMPRESSED_LENGTH = 65


def get_key_type(key) -> KeyType:
    if isinstance(key, (ed25519.Ed25519PublicKey, ed25519.Ed25519PrivateKey)):
        return KeyType.ED25519
    if isinstance(key, (ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey)):
        if isinstance(key.curve, ec.SECP256R1):
            return KeyType.ECDSA_P256
        raise UnsupportedKeyType(f"unsupported ECDSA curve: {key.curve.name}")
    raise UnsupportedKeyType(f"unsupported key type: {type(key).__name__}")


def is_private_key(key) -> bool:
    return isinstance(key, (ed25519.Ed25519PrivateKey, ec.EllipticCurvePrivateKey))


def check_is_valid_key(expected: str, key) -> KeyType:
    """Ensure ``key`` is a supported key of the expected kind ('private' or 'public')."""
    key_type = get_key_type(key)
    if (expected == "private") != is_private_key(key):
        raise UnsupportedKeyType(f"expected a {expected} key, got {type(key).__name__}")
    return key_type


def get_public_key_attribute_name(public_key: PublicKey) -> str:
    return get_key_type(public_key).public_key_attribute_name


def compress_p256_point(uncompressed: bytes) -> bytes:
    if len(uncompressed) != P256_UNCOMPRESSED_LENGTH or uncompressed[0] != 0x04:
        raise UnsupportedKeyType("expected a 65-byte uncompressed P-256 point")
    x, y = uncompressed[1:33], uncompressed[33:]
    return bytes([0x03 if y[-1] & 1 else 0x02]) + x


def get_raw_public_key(public_key: PublicKey) -> bytes:
    key_type = get_key_type(public_key)
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    if key_type is KeyType.ED25519:
        return der[-ED25519_RAW_LENGTH:]
    return compress_p256_point(der[-P256_UNCOMPRESSED_LENGTH:])


def public_key_from_attribute(name: str, raw: bytes) -> PublicKey:
    """Rebuild a public key from a signature attribute entry."""
    if name == KeyType.ED25519.public_key_attribute_name:
        return ed25519.Ed25519PublicKey.from_public_bytes(raw)
    if name == KeyType.ECDSA_P256.public_key_attribute_name:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
    raise UnsupportedKeyType(f"unknown public key attribute: {name!r}")


def sign_with(private_key: PrivateKey, data: bytes) -> bytes:
    key_type = check_is_valid_key("private", private_key)
    if key_type is KeyType.ED25519:
        return private_key.sign(data)
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))


def verify_signature(public_key: PublicKey, signature: bytes, data: bytes) -> None:
    key_type = check_is_valid_key("public", public_key)
    try:
        if key_type is KeyType.ED25519:
            public_key.verify(signature, data)
        else:
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature as e:
        raise SignatureNotVerifiable(f"{key_type.value} signature does not verify against its public key") from e


def parse_pem_key(pem: bytes, passphrase: Optional[bytes] = None) -> PrivateKey:
    key = serialization.load_pem_private_key(pem, password=passphrase)
    check_is_valid_key("private", key)
    return key


def load_private_key(
    pem: bytes,
    passphrase_provider: Optional[Callable[[], str]] = None,
) -> PrivateKey:
    """Parse a PEM private key, asking for a passphrase only if the key is encrypted.

    WEB_BUNDLE_SIGNING_PASSPHRASE is tried first, then ``passphrase_provider``.
    """
    try:
        return parse_pem_key(pem)
    except TypeError:
        # cryptography raises TypeError when an encrypted key is loaded without a password
        pass
    passphrase = config.WEB_BUNDLE_SIGNING_PASSPHRASE
    if passphrase is None and passphrase_provider is not None:
        passphrase = passphrase_provider()
    if passphrase is None:
        raise ValueError("private key is encrypted and no passphrase is available")
    return parse_pem_key(pem, passphrase.encode())


__all__ = [
    "KeyType",
    "PublicKey",
    "PrivateKey",
    "get_key_type",
    "is_private_key",
    "check_is_valid_key",
    "get_public_key_attribute_name",
    "get_raw_public_key",
    "public_key_from_attribute",
    "sign_with",
    "verify_signature",
    "parse_pem_key",
    "load_private_key",
]
