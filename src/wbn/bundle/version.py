"""Top-level layouts of the two supported bundle versions.

Both layouts share the container logic; the per-version shape differences
(primary URL slot, index entry shape, recognized sections) are isolated here
behind ``VersionLayout``.

b1: [magic, "b1\\0\\0", primary_url, section_lengths, sections, length]
b2: [magic, "b2\\0\\0",              section_lengths, sections, length]
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..errors import MalformedBundle, ResponseNotFound, UnsupportedVersion

# 🌐📦 in UTF-8
MAGIC = b"\xf0\x9f\x8c\x90\xf0\x9f\x93\xa6"
VERSION_FIELD_LENGTH = 4
LENGTH_FIELD_LENGTH = 8

KNOWN_SECTIONS = frozenset({"critical", "index", "responses", "signatures", "manifest", "primary"})


@dataclass
class TopLevel:
    magic: bytes
    version: str
    primary_url: Optional[str]
    section_lengths: bytes
    sections: List[Any]
    length: bytes


class VersionLayout:
    name = ""
    array_length = 0
    index_entry_length = 0

    def destructure(self, top: List[Any]) -> TopLevel:
        raise NotImplementedError

    def build_index_entry(self, offset: int, length: int) -> List[Any]:
        raise NotImplementedError

    def update_offsets(self, index: Dict[str, List[Any]], delta: int) -> None:
        raise NotImplementedError

    def build_top_level(
        self,
        primary_url: Optional[str],
        section_lengths: bytes,
        sections: List[Any],
        length: bytes,
    ) -> List[Any]:
        raise NotImplementedError

    def parse_index_entry(self, url: str, entry: Any) -> Tuple[int, int]:
        raise NotImplementedError

    def version_bytes(self) -> bytes:
        return self.name.encode("ascii").ljust(VERSION_FIELD_LENGTH, b"\x00")

    def _check_version_field(self, raw: Any) -> str:
        if not isinstance(raw, bytes) or len(raw) != VERSION_FIELD_LENGTH:
            raise MalformedBundle("version field must be a 4-byte byte string")
        version = raw.rstrip(b"\x00").decode("ascii", errors="replace")
        if version != self.name:
            raise MalformedBundle(
                f"version {version!r} does not match a {self.array_length}-element top-level array"
            )
        return version

    @staticmethod
    def _check_location(url: str, offset: Any, length: Any) -> Tuple[int, int]:
        for v in (offset, length):
            if not isinstance(v, int) or isinstance(v, bool) or v < 0:
                raise ResponseNotFound(f"{url}: index entry offset/length must be unsigned integers")
        return offset, length


class _B1Layout(VersionLayout):
    name = "b1"
    array_length = 6
    index_entry_length = 3

    def destructure(self, top: List[Any]) -> TopLevel:
        magic, version, primary_url, section_lengths, sections, length = top
        if primary_url is not None and not isinstance(primary_url, str):
            raise MalformedBundle("primary URL must be a text string")
        return TopLevel(magic, self._check_version_field(version), primary_url, section_lengths, sections, length)

    def build_index_entry(self, offset: int, length: int) -> List[Any]:
        # [variants-value, offset, length]; variants are not supported so the value is empty
        return [b"", offset, length]

    def update_offsets(self, index: Dict[str, List[Any]], delta: int) -> None:
        for entry in index.values():
            entry[1] += delta

    def build_top_level(self, primary_url, section_lengths, sections, length):
        return [MAGIC, self.version_bytes(), primary_url, section_lengths, sections, length]

    def parse_index_entry(self, url: str, entry: Any) -> Tuple[int, int]:
        if not isinstance(entry, list) or len(entry) != self.index_entry_length:
            raise ResponseNotFound(f"{url}: b1 index entry must be [variants, offset, length]")
        variants, offset, length = entry
        if not isinstance(variants, bytes):
            raise ResponseNotFound(f"{url}: variants value must be a byte string")
        if variants:
            raise ResponseNotFound(f"{url}: variants are not supported")
        return self._check_location(url, offset, length)


class _B2Layout(VersionLayout):
    name = "b2"
    array_length = 5
    index_entry_length = 2

    def destructure(self, top: List[Any]) -> TopLevel:
        magic, version, section_lengths, sections, length = top
        return TopLevel(magic, self._check_version_field(version), None, section_lengths, sections, length)

    def build_index_entry(self, offset: int, length: int) -> List[Any]:
        return [offset, length]

    def update_offsets(self, index: Dict[str, List[Any]], delta: int) -> None:
        for entry in index.values():
            entry[0] += delta

    def build_top_level(self, primary_url, section_lengths, sections, length):
        return [MAGIC, self.version_bytes(), section_lengths, sections, length]

    def parse_index_entry(self, url: str, entry: Any) -> Tuple[int, int]:
        if not isinstance(entry, list) or len(entry) != self.index_entry_length:
            raise ResponseNotFound(f"{url}: b2 index entry must be [offset, length]")
        offset, length = entry
        return self._check_location(url, offset, length)


class Version(enum.Enum):
    B1 = "b1"
    B2 = "b2"

    @property
    def layout(self) -> VersionLayout:
        return _LAYOUTS[self]

    @property
    def has_primary_url_field(self) -> bool:
        return self is Version.B1

    @classmethod
    def parse(cls, value: "Version | str") -> "Version":
        if isinstance(value, Version):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedVersion(f"unsupported bundle format version: {value!r}") from None

    @classmethod
    def from_array_length(cls, n: int) -> "Version":
        for v in cls:
            if v.layout.array_length == n:
                return v
        raise MalformedBundle(f"top-level array of {n} elements matches no known bundle version")


_LAYOUTS: Dict[Version, VersionLayout] = {
    Version.B1: _B1Layout(),
    Version.B2: _B2Layout(),
}
