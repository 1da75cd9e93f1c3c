from __future__ import annotations

import asyncio
import hashlib

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from wbn.bundle import Bundle, BundleBuilder
from wbn.cbor import Cbor2Codec
from wbn.errors import AlreadySigned, IdentityRequired, MalformedBundle, SignatureNotVerifiable
from wbn.integrity import (
    IntegrityBlock,
    IntegrityBlockSigner,
    IntegrityBlockVersion,
    ParsedKeySigningStrategy,
    get_signed_web_bundle_id,
    get_web_bundle_id,
    parse_integrity_block,
    sign_web_bundle,
    verify_signed_web_bundle,
)
from wbn.integrity.keys import get_public_key_attribute_name, get_raw_public_key, verify_signature
from wbn.integrity.signer import generate_data_to_be_signed
from wbn.obs.prom import REGISTRY, render_latest

PRIV = bytes(range(1, 33))
ED_KEY = Ed25519PrivateKey.from_private_bytes(PRIV)
EMPTY_V1 = bytes.fromhex("8348f09f968bf09f93a6443162000080")


def _bundle() -> bytes:
    b = BundleBuilder("b2")
    b.add_exchange("https://example.com/", 200, {"Content-Type": "text/plain"}, "hello world")
    return b.finalize()


def _len8(n: int) -> bytes:
    return n.to_bytes(8, "big")


class SlowStrategy(ParsedKeySigningStrategy):
    def __init__(self, private_key, delay: float):
        super().__init__(private_key)
        self.delay = delay

    async def sign(self, data: bytes) -> bytes:
        await asyncio.sleep(self.delay)
        return await super().sign(data)


class MismatchedStrategy(ParsedKeySigningStrategy):
    """Signs with one key but advertises another."""

    def __init__(self, signing_key, advertised_key):
        super().__init__(signing_key)
        self._advertised = advertised_key

    async def get_public_key(self):
        return self._advertised.public_key()


class CountingCodec(Cbor2Codec):
    def __init__(self):
        self.encoded = 0

    def encode(self, value):
        self.encoded += 1
        return super().encode(value)


def test_single_key_legacy_preimage():
    bundle = _bundle()
    signed = asyncio.run(IntegrityBlockSigner(bundle, [ParsedKeySigningStrategy(ED_KEY)], version="v1").sign())

    assert signed.signed_web_bundle == signed.integrity_block + bundle
    block, rest = parse_integrity_block(signed.signed_web_bundle)
    assert rest == bundle
    assert block.version is IntegrityBlockVersion.V1
    assert len(block.signature_stack) == 1

    sig = block.signature_stack[0]
    pub = ED_KEY.public_key()
    assert sig.signature_attributes == {"ed25519PublicKey": get_raw_public_key(pub)}
    attrs_cbor = cbor2.dumps(sig.signature_attributes, canonical=True)
    assert len(attrs_cbor) == 52

    digest = hashlib.sha512(bundle).digest()
    preimage = _len8(64) + digest + _len8(16) + EMPTY_V1 + _len8(52) + attrs_cbor
    assert generate_data_to_be_signed(digest, EMPTY_V1, attrs_cbor) == preimage
    pub.verify(sig.signature, preimage)


def test_multi_key_current_layout_keeps_key_order():
    keys = [
        ED_KEY,
        ec.derive_private_key(1001, ec.SECP256R1()),
        Ed25519PrivateKey.from_private_bytes(bytes(range(2, 34))),
        ec.derive_private_key(2002, ec.SECP256R1()),
    ]
    # first key finishes last
    strategies = [SlowStrategy(k, delay) for k, delay in zip(keys, [0.05, 0.0, 0.01, 0.0])]
    bundle = _bundle()
    signed = asyncio.run(IntegrityBlockSigner(bundle, strategies, web_bundle_id="explicit-id", version="v2").sign())

    block, rest = parse_integrity_block(signed.signed_web_bundle)
    assert rest == bundle
    assert block.attributes == {"webBundleId": "explicit-id"}
    assert len(block.signature_stack) == 4

    digest = hashlib.sha512(bundle).digest()
    unsigned = IntegrityBlock(IntegrityBlockVersion.V2, {"webBundleId": "explicit-id"}).to_cbor()
    for key, sig in zip(keys, block.signature_stack):
        pub = key.public_key()
        assert sig.signature_attributes == {get_public_key_attribute_name(pub): get_raw_public_key(pub)}
        attrs_cbor = cbor2.dumps(sig.signature_attributes, canonical=True)
        verify_signature(pub, sig.signature, generate_data_to_be_signed(digest, unsigned, attrs_cbor))

    verified = verify_signed_web_bundle(signed.signed_web_bundle)
    assert [get_raw_public_key(p) for p in verified] == [get_raw_public_key(k.public_key()) for k in keys]


def test_legacy_layout_multi_key_prepends():
    keys = [ED_KEY, ec.derive_private_key(77, ec.SECP256R1())]
    signed = sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(k) for k in keys], version="v1")
    block, _ = parse_integrity_block(signed.signed_web_bundle)
    raws = [sig.public_key_attribute()[1] for sig in block.signature_stack]
    assert raws == [get_raw_public_key(k.public_key()) for k in reversed(keys)]
    assert len(verify_signed_web_bundle(signed.signed_web_bundle)) == 2


def test_single_key_derives_web_bundle_id():
    signed = sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    assert get_signed_web_bundle_id(signed.signed_web_bundle) == get_web_bundle_id(ED_KEY.public_key())


def test_signed_bundle_still_decodes():
    bundle = _bundle()
    signed = sign_web_bundle(bundle, [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    _, rest = parse_integrity_block(signed.signed_web_bundle)
    assert Bundle(rest).get_response("https://example.com/").body == b"hello world"


def test_resigning_is_rejected():
    signed = sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    signer = IntegrityBlockSigner(signed.signed_web_bundle, [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    with pytest.raises(AlreadySigned):
        asyncio.run(signer.sign())


def test_multiple_keys_need_explicit_identity():
    strategies = [ParsedKeySigningStrategy(ED_KEY), ParsedKeySigningStrategy(ec.derive_private_key(5, ec.SECP256R1()))]
    with pytest.raises(IdentityRequired):
        IntegrityBlockSigner(_bundle(), strategies, version="v2")
    # the legacy layout has no identity attribute
    IntegrityBlockSigner(_bundle(), strategies, version="v1")


def test_requires_a_strategy():
    with pytest.raises(ValueError):
        IntegrityBlockSigner(_bundle(), [], web_bundle_id="x", version="v2")


def test_too_short_bundle():
    signer = IntegrityBlockSigner(b"\x00\x01", [ParsedKeySigningStrategy(ED_KEY)], version="v1")
    with pytest.raises(MalformedBundle):
        asyncio.run(signer.sign())


def test_broken_strategy_fails_the_whole_session():
    before = REGISTRY.get_sample_value("wbn_signing_failures_total", {"reason": "SignatureNotVerifiable"}) or 0
    other = Ed25519PrivateKey.from_private_bytes(bytes(range(3, 35)))
    strategies = [ParsedKeySigningStrategy(ED_KEY), MismatchedStrategy(other, ED_KEY)]
    signer = IntegrityBlockSigner(_bundle(), strategies, web_bundle_id="x", version="v2")
    with pytest.raises(SignatureNotVerifiable):
        asyncio.run(signer.sign())
    after = REGISTRY.get_sample_value("wbn_signing_failures_total", {"reason": "SignatureNotVerifiable"})
    assert after == before + 1


def test_tampered_bundle_fails_verification():
    signed = sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    tampered = signed.signed_web_bundle.replace(b"hello world", b"hello World")
    assert len(tampered) == len(signed.signed_web_bundle)
    with pytest.raises(SignatureNotVerifiable):
        verify_signed_web_bundle(tampered)


def test_signatures_counter():
    labels = {"key_type": "ed25519"}
    before = REGISTRY.get_sample_value("wbn_signatures_produced_total", labels) or 0
    sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v1")
    assert REGISTRY.get_sample_value("wbn_signatures_produced_total", labels) == before + 1


def test_metrics_render():
    sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v2")
    text = render_latest().decode()
    assert "wbn_signatures_produced_total" in text
    assert "wbn_bundles_finalized_total" in text


def test_sign_web_bundle_uses_given_codec():
    codec = CountingCodec()
    signed = sign_web_bundle(_bundle(), [ParsedKeySigningStrategy(ED_KEY)], version="v2", codec=codec)
    # block body, signature attributes and the sealed block
    assert codec.encoded >= 3
    assert len(verify_signed_web_bundle(signed.signed_web_bundle, codec)) == 1
