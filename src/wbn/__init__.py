"""Web Bundle (b1/b2) codec and Signed Web Bundle integrity block signing."""
from .bundle import Bundle, BundleBuilder, Version
from .integrity import (
    IntegrityBlockSigner,
    IntegrityBlockVersion,
    ParsedKeySigningStrategy,
    SigningStrategy,
    WebBundleId,
)

__version__ = "0.1.0"

__all__ = [
    "Bundle",
    "BundleBuilder",
    "Version",
    "IntegrityBlockSigner",
    "IntegrityBlockVersion",
    "ParsedKeySigningStrategy",
    "SigningStrategy",
    "WebBundleId",
]
