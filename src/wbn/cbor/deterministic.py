"""Deterministic CBOR checker (RFC 8949 section 4.2.1).

Walks a buffer holding one or more concatenated CBOR items and proves every item
uses the single valid encoding of its value:

- integer arguments (uint values, string lengths, array/map counts) use the
  shortest width; indefinite lengths and reserved codes are rejected
- byte/text strings fit inside the buffer
- arrays and maps hold exactly the number of items they declare
- map keys are unique and sorted by the bytewise order of their encodings

Only the major types used by bundles and integrity blocks are supported
(unsigned ints, byte/text strings, arrays, maps). Anything else raises
``UnsupportedMajorType``.

Nesting is tracked with an explicit stack, so attacker-chosen depth cannot
exhaust the interpreter stack.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import (
    DuplicateMapKey,
    IndefiniteOrReserved,
    NonMinimalInteger,
    TruncatedItem,
    UnorderedMapKeys,
    UnsupportedMajorType,
)

TYPE_UINT = 0
TYPE_NEGINT = 1
TYPE_BYTES = 2
TYPE_TEXT = 3
TYPE_ARRAY = 4
TYPE_MAP = 5
TYPE_TAG = 6
TYPE_OTHER = 7

# additional info -> (argument width in bytes, smallest value allowed at that width)
_ARGUMENT_WIDTHS = {
    24: (1, 24),
    25: (2, 1 << 8),
    26: (4, 1 << 16),
    27: (8, 1 << 32),
}


@dataclass
class _Container:
    start: int
    is_map: bool
    remaining: int
    index: int = 0
    last_key: Optional[bytes] = None


def read_head(data: bytes, pos: int) -> Tuple[int, int, int]:
    """Read the item head at ``pos``; return (major type, argument, position after the head)."""
    if pos >= len(data):
        raise TruncatedItem("missing item head", pos)
    lead = data[pos]
    major = lead >> 5
    info = lead & 0x1F
    if info < 24:
        return major, info, pos + 1
    if info not in _ARGUMENT_WIDTHS:
        raise IndefiniteOrReserved(info, pos)
    width, lower_limit = _ARGUMENT_WIDTHS[info]
    end = pos + 1 + width
    if end > len(data):
        raise TruncatedItem("integer argument", pos, expected=width, available=len(data) - pos - 1)
    value = int.from_bytes(data[pos + 1 : end], "big")
    if value < lower_limit:
        raise NonMinimalInteger(value, width, pos)
    return major, value, end


def _check_item(data: bytes, pos: int) -> int:
    """Check one complete top-level item starting at ``pos``; return the offset just past it."""
    stack: List[_Container] = []
    while True:
        if pos >= len(data):
            outer = stack[-1]
            kind = "map" if outer.is_map else "array"
            raise TruncatedItem(f"too few items in CBOR {kind}", outer.start)

        start = pos
        major, arg, pos = read_head(data, pos)

        if major in (TYPE_BYTES, TYPE_TEXT):
            available = len(data) - pos
            if arg > available:
                raise TruncatedItem("string length exceeds input", start, expected=arg, available=available)
            pos += arg
        elif major == TYPE_ARRAY:
            if arg:
                stack.append(_Container(start=start, is_map=False, remaining=arg))
                continue
        elif major == TYPE_MAP:
            if arg:
                stack.append(_Container(start=start, is_map=True, remaining=arg * 2))
                continue
        elif major != TYPE_UINT:
            raise UnsupportedMajorType(major, start)

        # The item [start, pos) is complete; fold it into its enclosing containers.
        while stack:
            outer = stack[-1]
            if outer.is_map and outer.index % 2 == 0:
                key = bytes(data[start:pos])
                if outer.last_key is not None:
                    if key == outer.last_key:
                        raise DuplicateMapKey(key, start)
                    if key < outer.last_key:
                        raise UnorderedMapKeys(outer.last_key, key, start)
                outer.last_key = key
            outer.index += 1
            outer.remaining -= 1
            if outer.remaining:
                break
            stack.pop()
            start = outer.start
        if not stack:
            return pos


def check_deterministic(data: bytes) -> None:
    """Raise a ``DeterminismError`` unless ``data`` is a sequence of deterministic CBOR items."""
    pos = 0
    while pos < len(data):
        pos = _check_item(data, pos)


def is_deterministic(data: bytes) -> bool:
    try:
        check_deterministic(data)
    except ValueError:
        return False
    return True
