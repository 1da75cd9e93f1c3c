from __future__ import annotations

import io
from typing import Any, Protocol, Tuple

import cbor2


class CborCodec(Protocol):
    """Structured value <-> bytes capability used by the container and signing code."""

    def encode(self, value: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...

    def decode_first(self, data: bytes) -> Tuple[Any, bytes]: ...


def validate_no_floats(obj: Any) -> None:
    if isinstance(obj, float):
        raise ValueError("floats not allowed in bundle CBOR")
    if isinstance(obj, dict):
        for k, v in obj.items():
            validate_no_floats(k)
            validate_no_floats(v)
    elif isinstance(obj, (list, tuple)):
        for v in obj:
            validate_no_floats(v)


class Cbor2Codec:
    """Default codec backed by cbor2 in canonical mode."""

    def encode(self, value: Any) -> bytes:
        validate_no_floats(value)
        return cbor2.dumps(
            value,
            canonical=True,
            timezone=None,
            datetime_as_timestamp=False,
            value_sharing=False,
            default=None,
        )

    def decode(self, data: bytes) -> Any:
        try:
            return cbor2.loads(data)
        except cbor2.CBORDecodeError as e:
            raise ValueError(f"invalid CBOR: {e}") from e

    def decode_first(self, data: bytes) -> Tuple[Any, bytes]:
        fp = io.BytesIO(data)
        try:
            value = cbor2.CBORDecoder(fp).decode()
        except cbor2.CBORDecodeError as e:
            raise ValueError(f"invalid CBOR: {e}") from e
        return value, bytes(data[fp.tell() :])


DEFAULT_CODEC: CborCodec = Cbor2Codec()


def encoded_length(value: Any, codec: CborCodec = DEFAULT_CODEC) -> int:
    return len(codec.encode(value))


def array_header_length(count: int, codec: CborCodec = DEFAULT_CODEC) -> int:
    # An array header uses the same argument width as the unsigned int ``count``.
    return len(codec.encode(count))
