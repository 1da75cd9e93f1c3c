from __future__ import annotations

import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..cbor.codec import DEFAULT_CODEC, CborCodec, array_header_length, encoded_length
from ..config import WBN_FORMAT_VERSION
from ..errors import (
    BundleSealed,
    DuplicateSection,
    MissingContentType,
    PrimaryUrlMissing,
    UnsupportedVersion,
)
from ..obs.prom import BUNDLE_BYTES, BUNDLES_FINALIZED
from ..utils.logging import get_logger
from .headers import HeaderMap, validate_exchange_url
from .version import LENGTH_FIELD_LENGTH, Version

log = get_logger()

DEFAULT_CONTENT_TYPE = "application/octet-stream"
# Sections the builder writes itself during finalize()
_RESERVED_SECTIONS = ("index", "responses")


def guess_content_type(path: Union[str, os.PathLike]) -> str:
    ctype, _ = mimetypes.guess_type(str(path))
    return ctype or DEFAULT_CONTENT_TYPE


class BundleBuilder:
    """Incrementally collects exchanges and sections, then seals them into bundle bytes.

    Usage::

        b = BundleBuilder("b2")
        b.add_exchange("https://example.com/", 200, {"Content-Type": "text/html"}, "<p>hi</p>")
        wbn = b.finalize()

    For ``b1`` a primary URL naming one of the added exchanges is required
    before ``finalize()``.
    """

    def __init__(self, format_version: Union[Version, str] = WBN_FORMAT_VERSION, codec: CborCodec = DEFAULT_CODEC):
        self.version = Version.parse(format_version)
        self.codec = codec
        self.primary_url: Optional[str] = None
        self.manifest_url: Optional[str] = None
        self._section_lengths: List[Any] = []
        self._sections: List[Any] = []
        self._responses: List[List[bytes]] = []
        self._index: Dict[str, List[Any]] = {}
        self._current_responses_offset = 0
        self._sealed = False

    def _check_open(self) -> None:
        if self._sealed:
            raise BundleSealed("bundle has already been finalized")

    def set_primary_url(self, url: str) -> "BundleBuilder":
        self._check_open()
        if self.primary_url is not None:
            raise ValueError("primary URL is already set")
        validate_exchange_url(url)
        self.primary_url = url
        if not self.version.has_primary_url_field:
            self.add_section("primary", url)
        return self

    def set_manifest_url(self, url: str) -> "BundleBuilder":
        self._check_open()
        if self.version is not Version.B1:
            raise UnsupportedVersion("manifest URL is only supported by b1 bundles")
        if self.manifest_url is not None:
            raise ValueError("manifest URL is already set")
        validate_exchange_url(url)
        self.manifest_url = url
        return self

    def add_section(self, name: str, content: Any) -> "BundleBuilder":
        self._check_open()
        if name in _RESERVED_SECTIONS:
            raise DuplicateSection(f"section {name!r} is written by the builder")
        self._add_section(name, content)
        return self

    def _add_section(self, name: str, content: Any) -> None:
        if name in self._section_lengths[::2]:
            raise DuplicateSection(f"duplicated section: {name}")
        self._section_lengths.extend([name, encoded_length(content, self.codec)])
        self._sections.append(content)

    def add_exchange(
        self,
        url: str,
        status: int,
        headers: Optional[Mapping[str, str]],
        body: Union[bytes, str],
    ) -> "BundleBuilder":
        self._check_open()
        validate_exchange_url(url)
        if isinstance(body, str):
            body = body.encode("utf-8")
        header_map = HeaderMap(status, headers)
        if body and "content-type" not in header_map:
            raise MissingContentType(f"non-empty exchange for {url} must have a Content-Type header")
        response = [header_map.to_cbor(self.codec), bytes(body)]
        offset = self._current_responses_offset
        length = encoded_length(response, self.codec)
        self._responses.append(response)
        # Offsets are relative to the first response until finalize() knows the array header size.
        self._index[url] = self.version.layout.build_index_entry(offset, length)
        self._current_responses_offset += length
        log.debug("wbn: added %s (%d) at offset %d, %d bytes", url, status, offset, length)
        return self

    def add_file(self, url: str, file: Union[str, os.PathLike]) -> "BundleBuilder":
        headers = {"Content-Type": guess_content_type(file)}
        return self.add_exchange(url, 200, headers, Path(file).read_bytes())

    def add_files_recursively(self, base_url: str, directory: Union[str, os.PathLike]) -> "BundleBuilder":
        if not base_url.endswith("/"):
            raise ValueError("base_url must end with '/'")
        for entry in sorted(Path(directory).iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                self.add_files_recursively(base_url + entry.name + "/", entry)
            elif entry.name == "index.html":
                # Serve the directory URL itself and redirect .../index.html to it.
                self.add_file(base_url, entry)
                self.add_exchange(base_url + entry.name, 301, {"Location": "./"}, b"")
            else:
                self.add_file(base_url + entry.name, entry)
        return self

    def _fixup_index(self) -> Dict[str, List[Any]]:
        self.version.layout.update_offsets(self._index, array_header_length(len(self._responses), self.codec))
        return self._index

    def finalize(self) -> bytes:
        self._check_open()
        if self.version is Version.B1:
            if self.primary_url is None:
                raise PrimaryUrlMissing("primary URL is not set")
            if self.primary_url not in self._index:
                raise PrimaryUrlMissing(f"exchange for primary URL ({self.primary_url}) does not exist")
            if self.manifest_url is not None:
                self._add_section("manifest", self.manifest_url)
        self._add_section("index", self._fixup_index())
        self._add_section("responses", self._responses)
        self._sealed = True

        top = self.version.layout.build_top_level(
            self.primary_url,
            self.codec.encode(self._section_lengths),
            self._sections,
            b"\x00" * LENGTH_FIELD_LENGTH,
        )
        wbn = bytearray(self.codec.encode(top))
        wbn[-LENGTH_FIELD_LENGTH:] = len(wbn).to_bytes(LENGTH_FIELD_LENGTH, "big")

        BUNDLES_FINALIZED.labels(version=self.version.value).inc()
        BUNDLE_BYTES.inc(len(wbn))
        log.info("wbn: finalized %s bundle, %d exchanges, %d bytes", self.version.value, len(self._responses), len(wbn))
        return bytes(wbn)
