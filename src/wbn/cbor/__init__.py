from .codec import DEFAULT_CODEC, Cbor2Codec, CborCodec, encoded_length
from .deterministic import check_deterministic, is_deterministic

__all__ = [
    "CborCodec",
    "Cbor2Codec",
    "DEFAULT_CODEC",
    "encoded_length",
    "check_deterministic",
    "is_deterministic",
]
