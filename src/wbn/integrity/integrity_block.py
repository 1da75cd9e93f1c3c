"""Integrity block: the signed manifest prepended to a bundle.

Wire formats:
  v1 (legacy):  [magic, "1b\\0\\0", [signature, ...]]              newest signature first
  v2 (current): [magic, "2b\\0\\0", {"webBundleId": id}, [signature, ...]]  signatures in key order

signature = [{attribute name: bytes}, signature bytes]

Every serialization is checked with the deterministic CBOR verifier, since the
signed preimage embeds these bytes.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..cbor.codec import DEFAULT_CODEC, CborCodec
from ..cbor.deterministic import check_deterministic
from ..errors import MalformedIntegrityBlock, UnsupportedVersion
from .keys import KeyType

INTEGRITY_BLOCK_MAGIC = b"\xf0\x9f\x96\x8b\xf0\x9f\x93\xa6"  # 🖋📦
WEB_BUNDLE_ID_ATTRIBUTE_NAME = "webBundleId"
PUBLIC_KEY_ATTRIBUTE_NAMES = frozenset(t.public_key_attribute_name for t in KeyType)


class IntegrityBlockVersion(enum.Enum):
    V1 = "v1"
    V2 = "v2"

    @property
    def version_bytes(self) -> bytes:
        return b"1b\x00\x00" if self is IntegrityBlockVersion.V1 else b"2b\x00\x00"

    @property
    def has_attributes(self) -> bool:
        return self is IntegrityBlockVersion.V2

    @classmethod
    def parse(cls, value: "IntegrityBlockVersion | str") -> "IntegrityBlockVersion":
        if isinstance(value, IntegrityBlockVersion):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedVersion(f"unsupported integrity block version: {value!r}") from None

    @classmethod
    def from_version_bytes(cls, raw: bytes) -> "IntegrityBlockVersion":
        for v in cls:
            if v.version_bytes == raw:
                return v
        raise MalformedIntegrityBlock(f"unknown integrity block version bytes: {raw!r}")


@dataclass
class IntegritySignature:
    signature_attributes: Dict[str, bytes]
    signature: bytes

    def public_key_attribute(self) -> Tuple[str, bytes]:
        names = [k for k in self.signature_attributes if k in PUBLIC_KEY_ATTRIBUTE_NAMES]
        if len(names) != 1:
            raise MalformedIntegrityBlock(
                f"signature attributes must hold exactly one public key, found {len(names)}"
            )
        return names[0], self.signature_attributes[names[0]]

    def to_cbor_value(self) -> List[Any]:
        return [dict(self.signature_attributes), self.signature]


@dataclass
class IntegrityBlock:
    version: IntegrityBlockVersion = IntegrityBlockVersion.V2
    attributes: Dict[str, str] = field(default_factory=dict)
    signature_stack: List[IntegritySignature] = field(default_factory=list)
    codec: CborCodec = field(default=DEFAULT_CODEC, repr=False, compare=False)
    sealed: bool = field(default=False, repr=False, compare=False)

    def _check_mutable(self) -> None:
        if self.sealed:
            raise ValueError("integrity block is sealed")

    @property
    def web_bundle_id(self) -> str:
        if not self.version.has_attributes:
            raise UnsupportedVersion("v1 integrity blocks carry no web bundle id")
        try:
            return self.attributes[WEB_BUNDLE_ID_ATTRIBUTE_NAME]
        except KeyError:
            raise MalformedIntegrityBlock("integrity block has no webBundleId attribute") from None

    def set_web_bundle_id(self, web_bundle_id: str) -> None:
        self._check_mutable()
        if not self.version.has_attributes:
            raise UnsupportedVersion("v1 integrity blocks carry no attributes")
        if self.signature_stack:
            raise ValueError("attributes cannot change once signatures were added")
        self.attributes[WEB_BUNDLE_ID_ATTRIBUTE_NAME] = web_bundle_id

    def add_integrity_signature(self, signature: IntegritySignature) -> None:
        self._check_mutable()
        signature.public_key_attribute()
        if self.version is IntegrityBlockVersion.V1:
            self.signature_stack.insert(0, signature)
        else:
            self.signature_stack.append(signature)

    def to_cbor_value(self) -> List[Any]:
        stack = [s.to_cbor_value() for s in self.signature_stack]
        if self.version.has_attributes:
            return [INTEGRITY_BLOCK_MAGIC, self.version.version_bytes, dict(self.attributes), stack]
        return [INTEGRITY_BLOCK_MAGIC, self.version.version_bytes, stack]

    def to_cbor(self) -> bytes:
        data = self.codec.encode(self.to_cbor_value())
        check_deterministic(data)
        return data

    def seal(self) -> bytes:
        data = self.to_cbor()
        self.sealed = True
        return data

    def unsigned_copy(self) -> "IntegrityBlock":
        """The block as it was before any signature was added."""
        return IntegrityBlock(self.version, dict(self.attributes), [], self.codec)

    @classmethod
    def from_cbor_value(cls, value: Any, codec: CborCodec = DEFAULT_CODEC) -> "IntegrityBlock":
        if not isinstance(value, list) or len(value) not in (3, 4):
            raise MalformedIntegrityBlock("integrity block must be a 3 or 4 element array")
        magic, raw_version = value[0], value[1]
        if magic != INTEGRITY_BLOCK_MAGIC:
            raise MalformedIntegrityBlock("integrity block magic mismatch")
        version = IntegrityBlockVersion.from_version_bytes(raw_version)
        expected_len = 4 if version.has_attributes else 3
        if len(value) != expected_len:
            raise MalformedIntegrityBlock(f"{version.value} integrity block must have {expected_len} elements")
        attributes: Dict[str, str] = {}
        if version.has_attributes:
            attributes = value[2]
            if not isinstance(attributes, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in attributes.items()
            ):
                raise MalformedIntegrityBlock("integrity block attributes must map text to text")
        stack = value[-1]
        if not isinstance(stack, list):
            raise MalformedIntegrityBlock("signature stack must be an array")
        signatures: List[IntegritySignature] = []
        for entry in stack:
            if not (isinstance(entry, list) and len(entry) == 2):
                raise MalformedIntegrityBlock("integrity signature must be [attributes, signature]")
            attrs, sig = entry
            if not isinstance(attrs, dict) or not isinstance(sig, bytes):
                raise MalformedIntegrityBlock("integrity signature has malformed fields")
            if not all(isinstance(k, str) and isinstance(v, bytes) for k, v in attrs.items()):
                raise MalformedIntegrityBlock("signature attributes must map text to bytes")
            signature = IntegritySignature(dict(attrs), sig)
            signature.public_key_attribute()
            signatures.append(signature)
        return cls(version, dict(attributes), signatures, codec)


def parse_integrity_block(data: bytes, codec: CborCodec = DEFAULT_CODEC) -> Tuple[IntegrityBlock, bytes]:
    """Split a signed bundle into its integrity block and the bundle bytes that follow it."""
    try:
        value, rest = codec.decode_first(data)
    except ValueError as e:
        raise MalformedIntegrityBlock(f"integrity block is not valid CBOR: {e}") from e
    check_deterministic(data[: len(data) - len(rest)])
    return IntegrityBlock.from_cbor_value(value, codec), rest


def has_integrity_block(data: bytes) -> bool:
    # Array header and byte string header come first, then the magic.
    return data[2 : 2 + len(INTEGRITY_BLOCK_MAGIC)] == INTEGRITY_BLOCK_MAGIC
