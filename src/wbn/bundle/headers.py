from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from ..cbor.codec import DEFAULT_CODEC, CborCodec
from ..errors import (
    HeaderConflict,
    InvalidExchangeURL,
    InvalidStatus,
    MalformedHeaders,
)

STATUS_PSEUDO_HEADER = ":status"
_STATUS_RE = re.compile(r"^\d{3}$")


def validate_exchange_url(url: str) -> None:
    if not isinstance(url, str):
        raise InvalidExchangeURL(f"exchange URL must be a string, got {type(url).__name__}")
    try:
        parts = urlsplit(url)
        username, password = parts.username, parts.password
    except ValueError as e:
        raise InvalidExchangeURL(f"cannot parse exchange URL {url!r}: {e}") from e
    if username is not None or password is not None:
        raise InvalidExchangeURL(f"exchange URL must not have credentials: {url}")
    if parts.fragment:
        raise InvalidExchangeURL(f"exchange URL must not have a fragment: {url}")


def merge_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Lower-case header names.

    Names colliding case-insensitively are accepted only when their values are
    equal ignoring case; the later value is kept. Any other collision raises.
    """
    merged: Dict[str, str] = {}
    for name, value in (headers or {}).items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise MalformedHeaders("header names and values must be strings")
        if not name.isascii() or not value.isascii():
            raise MalformedHeaders(f"header {name!r} must be ASCII")
        key = name.lower()
        if key.startswith(":"):
            raise MalformedHeaders(f"pseudo header {name!r} cannot be set explicitly")
        prev = merged.get(key)
        if prev is not None and prev.lower() != value.lower():
            raise HeaderConflict(f"conflicting values for header {key!r}: {prev!r} vs {value!r}")
        merged[key] = value
    return merged


class HeaderMap(dict):
    """Response headers plus the ``:status`` pseudo header, keyed by lower-case name."""

    def __init__(self, status: int, headers: Optional[Mapping[str, str]] = None):
        super().__init__()
        if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 999:
            raise InvalidStatus(f"invalid status code: {status!r}")
        self[STATUS_PSEUDO_HEADER] = str(status)
        self.update(merge_headers(headers))

    @property
    def status(self) -> int:
        return int(self[STATUS_PSEUDO_HEADER])

    def headers(self) -> Dict[str, str]:
        return {k: v for k, v in self.items() if k != STATUS_PSEUDO_HEADER}

    def to_cbor(self, codec: CborCodec = DEFAULT_CODEC) -> bytes:
        return codec.encode({k.encode("ascii"): v.encode("ascii") for k, v in self.items()})

    @staticmethod
    def decode(header_cbor: bytes, codec: CborCodec = DEFAULT_CODEC) -> Tuple[int, Dict[str, str]]:
        try:
            m = codec.decode(header_cbor)
        except ValueError as e:
            raise MalformedHeaders(f"header map is not valid CBOR: {e}") from e
        return HeaderMap.decode_map(m)

    @staticmethod
    def decode_map(m: Any) -> Tuple[int, Dict[str, str]]:
        if not isinstance(m, dict):
            raise MalformedHeaders("header map must be a CBOR map")
        status: Optional[str] = None
        headers: Dict[str, str] = {}
        for k, v in m.items():
            if not isinstance(k, bytes) or not isinstance(v, bytes):
                raise MalformedHeaders("header names and values must be byte strings")
            if not k.isascii() or not v.isascii():
                raise MalformedHeaders(f"non-ASCII header entry: {k!r}")
            name, value = k.decode("ascii"), v.decode("ascii")
            if name.lower() != name:
                raise MalformedHeaders(f"header name {name!r} contains upper-case")
            if name == STATUS_PSEUDO_HEADER:
                status = value
            elif name.startswith(":"):
                raise MalformedHeaders(f"unknown pseudo header {name!r}")
            else:
                headers[name] = value
        if status is None:
            raise MalformedHeaders("header map has no :status")
        if not _STATUS_RE.match(status):
            raise MalformedHeaders(f":status {status!r} is not three digits")
        return int(status), headers
