from .integrity_block import IntegrityBlock, IntegrityBlockVersion, IntegritySignature, parse_integrity_block
from .keys import KeyType, load_private_key, parse_pem_key
from .signer import IntegrityBlockSigner, SignedWebBundle, sign_web_bundle, verify_signed_web_bundle
from .strategy import ParsedKeySigningStrategy, SigningStrategy
from .web_bundle_id import WebBundleId, get_signed_web_bundle_id, get_web_bundle_id

__all__ = [
    "IntegrityBlock",
    "IntegrityBlockVersion",
    "IntegritySignature",
    "IntegrityBlockSigner",
    "KeyType",
    "ParsedKeySigningStrategy",
    "SignedWebBundle",
    "SigningStrategy",
    "WebBundleId",
    "get_signed_web_bundle_id",
    "get_web_bundle_id",
    "load_private_key",
    "parse_integrity_block",
    "parse_pem_key",
    "sign_web_bundle",
    "verify_signed_web_bundle",
]
