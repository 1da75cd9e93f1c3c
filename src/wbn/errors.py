"""Exception hierarchy for bundle encoding, decoding and signing.

Every error is a ``ValueError`` so callers that treat bad input generically keep
working; the subclasses name the specific reason.
"""
from __future__ import annotations

from typing import Optional


class WebBundleError(ValueError):
    """Base class for all errors raised by this package."""


# Validation errors


class InvalidExchangeURL(WebBundleError):
    pass


class MissingContentType(WebBundleError):
    pass


class InvalidStatus(WebBundleError):
    pass


class HeaderConflict(WebBundleError):
    pass


class MalformedHeaders(WebBundleError):
    pass


class DuplicateSection(WebBundleError):
    pass


class UnknownCriticalSection(WebBundleError):
    def __init__(self, name: str):
        super().__init__(f"unknown critical section: {name!r}")
        self.name = name


class PrimaryUrlMissing(WebBundleError):
    pass


class BundleSealed(WebBundleError):
    pass


class MalformedBundle(WebBundleError):
    pass


class ResponseNotFound(WebBundleError):
    pass


class UnsupportedVersion(WebBundleError):
    pass


class UnsupportedKeyType(WebBundleError):
    pass


class AlreadySigned(WebBundleError):
    pass


class IdentityRequired(WebBundleError):
    pass


class MalformedIntegrityBlock(WebBundleError):
    pass


# Determinism errors


class DeterminismError(WebBundleError):
    """Input is not the deterministic CBOR encoding of its values."""

    def __init__(self, message: str, offset: int):
        super().__init__(f"{message} (at byte {offset})")
        self.offset = offset


class NonMinimalInteger(DeterminismError):
    def __init__(self, value: int, width: int, offset: int):
        super().__init__(f"value {value} must not be encoded with a {width}-byte argument", offset)
        self.value = value
        self.width = width


class IndefiniteOrReserved(DeterminismError):
    def __init__(self, additional_info: int, offset: int):
        super().__init__(f"additional info {additional_info} is not allowed in deterministic CBOR", offset)
        self.additional_info = additional_info


class TruncatedItem(DeterminismError):
    def __init__(self, message: str, offset: int, expected: Optional[int] = None, available: Optional[int] = None):
        if expected is not None:
            message = f"{message}: expected {expected} bytes, {available} available"
        super().__init__(message, offset)
        self.expected = expected
        self.available = available


class DuplicateMapKey(DeterminismError):
    def __init__(self, key: bytes, offset: int):
        super().__init__(f"CBOR map contains duplicate key {key.hex()}", offset)
        self.key = key


class UnorderedMapKeys(DeterminismError):
    def __init__(self, previous: bytes, key: bytes, offset: int):
        super().__init__(
            f"CBOR map keys are not lexicographically ordered: {key.hex()} after {previous.hex()}",
            offset,
        )
        self.previous = previous
        self.key = key


class UnsupportedMajorType(DeterminismError, NotImplementedError):
    def __init__(self, major_type: int, offset: int):
        super().__init__(f"determinism check not implemented for major type {major_type}", offset)
        self.major_type = major_type


# Cryptographic errors


class SignatureNotVerifiable(WebBundleError):
    pass
