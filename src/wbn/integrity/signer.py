"""Integrity block signing.

Preimage for every signature (lengths are 8-byte big-endian):

    len(hash) || SHA-512(unsigned bundle)
    len(ib)   || CBOR(integrity block before any signature is added)
    len(attr) || CBOR({public key attribute name: raw public key})

Keys sign independently (and concurrently) against the same unsigned block;
only once every signature has verified are they added to the stack, in the
order the strategies were given. The signed artifact is
``CBOR(signed integrity block) || unsigned bundle``.
"""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from ..bundle.version import LENGTH_FIELD_LENGTH
from ..cbor.codec import DEFAULT_CODEC, CborCodec
from ..cbor.deterministic import check_deterministic
from ..config import WBN_INTEGRITY_BLOCK_VERSION
from ..errors import AlreadySigned, IdentityRequired, MalformedBundle
from ..obs.prom import SIGNATURES_PRODUCED, SIGNING_FAILURES
from ..utils.logging import get_logger
from .integrity_block import IntegrityBlock, IntegrityBlockVersion, IntegritySignature, parse_integrity_block
from .keys import (
    PublicKey,
    check_is_valid_key,
    get_raw_public_key,
    public_key_from_attribute,
    verify_signature,
)
from .strategy import SigningStrategy
from .web_bundle_id import get_web_bundle_id

log = get_logger()


def read_web_bundle_length(web_bundle: bytes) -> int:
    """Length recorded in the trailing 8 bytes of a bundle."""
    if len(web_bundle) < LENGTH_FIELD_LENGTH:
        raise MalformedBundle("bundle is too short to hold its length field")
    return int.from_bytes(web_bundle[-LENGTH_FIELD_LENGTH:], "big")


def compute_web_bundle_hash(web_bundle: bytes) -> bytes:
    return hashlib.sha512(web_bundle).digest()


def generate_data_to_be_signed(web_bundle_hash: bytes, integrity_block_cbor: bytes, attributes_cbor: bytes) -> bytes:
    parts = []
    for part in (web_bundle_hash, integrity_block_cbor, attributes_cbor):
        parts.append(len(part).to_bytes(LENGTH_FIELD_LENGTH, "big"))
        parts.append(part)
    return b"".join(parts)


@dataclass
class SignedWebBundle:
    integrity_block: bytes
    signed_web_bundle: bytes


class IntegrityBlockSigner:
    def __init__(
        self,
        web_bundle: bytes,
        signing_strategies: Sequence[SigningStrategy],
        web_bundle_id: Optional[str] = None,
        version: Union[IntegrityBlockVersion, str] = WBN_INTEGRITY_BLOCK_VERSION,
        codec: CborCodec = DEFAULT_CODEC,
    ):
        self.web_bundle = bytes(web_bundle)
        self.signing_strategies = list(signing_strategies)
        self.web_bundle_id = web_bundle_id
        self.version = IntegrityBlockVersion.parse(version)
        self.codec = codec
        if not self.signing_strategies:
            raise ValueError("at least one signing strategy is required")
        if self.version.has_attributes and web_bundle_id is None and len(self.signing_strategies) > 1:
            raise IdentityRequired("web bundle id must be given explicitly when signing with more than one key")

    def obtain_integrity_block(self) -> IntegrityBlock:
        web_bundle_length = read_web_bundle_length(self.web_bundle)
        if web_bundle_length != len(self.web_bundle):
            raise AlreadySigned(
                f"bundle length field says {web_bundle_length} bytes but input has {len(self.web_bundle)}; "
                "re-signing signed bundles is not supported"
            )
        return IntegrityBlock(self.version, codec=self.codec)

    async def _resolve_web_bundle_id(self) -> str:
        if self.web_bundle_id is not None:
            return self.web_bundle_id
        return get_web_bundle_id(await self.signing_strategies[0].get_public_key())

    async def _sign_one(
        self,
        strategy: SigningStrategy,
        web_bundle_hash: bytes,
        integrity_block_cbor: bytes,
    ) -> IntegritySignature:
        public_key = await strategy.get_public_key()
        key_type = check_is_valid_key("public", public_key)
        attributes = {key_type.public_key_attribute_name: get_raw_public_key(public_key)}
        attributes_cbor = self.codec.encode(attributes)
        check_deterministic(attributes_cbor)

        data = generate_data_to_be_signed(web_bundle_hash, integrity_block_cbor, attributes_cbor)
        signature = await strategy.sign(data)
        # self-check against the key the strategy advertised
        verify_signature(public_key, signature, data)
        SIGNATURES_PRODUCED.labels(key_type=key_type.value).inc()
        log.debug("wbn: %s signature verified", key_type.value)
        return IntegritySignature(attributes, signature)

    async def sign(self) -> SignedWebBundle:
        try:
            integrity_block = self.obtain_integrity_block()
            if self.version.has_attributes:
                integrity_block.set_web_bundle_id(await self._resolve_web_bundle_id())
            web_bundle_hash = compute_web_bundle_hash(self.web_bundle)
            integrity_block_cbor = integrity_block.to_cbor()

            tasks = [
                asyncio.ensure_future(self._sign_one(s, web_bundle_hash, integrity_block_cbor))
                for s in self.signing_strategies
            ]
            try:
                signatures = await asyncio.gather(*tasks)
            except BaseException:
                for t in tasks:
                    t.cancel()
                raise
        except Exception as e:
            SIGNING_FAILURES.labels(reason=type(e).__name__).inc()
            raise

        for signature in signatures:
            integrity_block.add_integrity_signature(signature)
        signed_ib = integrity_block.seal()
        log.info(
            "wbn: signed %d-byte bundle with %d key(s), %s integrity block of %d bytes",
            len(self.web_bundle),
            len(signatures),
            self.version.value,
            len(signed_ib),
        )
        return SignedWebBundle(integrity_block=signed_ib, signed_web_bundle=signed_ib + self.web_bundle)


def sign_web_bundle(
    web_bundle: bytes,
    signing_strategies: Sequence[SigningStrategy],
    web_bundle_id: Optional[str] = None,
    version: Union[IntegrityBlockVersion, str] = WBN_INTEGRITY_BLOCK_VERSION,
    codec: CborCodec = DEFAULT_CODEC,
) -> SignedWebBundle:
    """Blocking wrapper around ``IntegrityBlockSigner.sign`` for callers without an event loop."""
    signer = IntegrityBlockSigner(web_bundle, signing_strategies, web_bundle_id, version, codec)
    return asyncio.run(signer.sign())


def verify_signed_web_bundle(signed_web_bundle: bytes, codec: CborCodec = DEFAULT_CODEC) -> List[PublicKey]:
    """Verify every signature of a signed bundle; return the public keys in stack order."""
    block, web_bundle = parse_integrity_block(signed_web_bundle, codec)
    if read_web_bundle_length(web_bundle) != len(web_bundle):
        raise MalformedBundle("bundle following the integrity block has a wrong length field")
    web_bundle_hash = compute_web_bundle_hash(web_bundle)
    integrity_block_cbor = block.unsigned_copy().to_cbor()
    keys: List[PublicKey] = []
    for signature in block.signature_stack:
        name, raw = signature.public_key_attribute()
        public_key = public_key_from_attribute(name, raw)
        attributes_cbor = codec.encode(signature.signature_attributes)
        check_deterministic(attributes_cbor)
        data = generate_data_to_be_signed(web_bundle_hash, integrity_block_cbor, attributes_cbor)
        verify_signature(public_key, signature.signature, data)
        keys.append(public_key)
    return keys


__all__ = [
    "IntegrityBlockSigner",
    "SignedWebBundle",
    "compute_web_bundle_hash",
    "generate_data_to_be_signed",
    "read_web_bundle_length",
    "sign_web_bundle",
    "verify_signed_web_bundle",
]
