from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..cbor.codec import DEFAULT_CODEC, CborCodec
from ..cbor.deterministic import check_deterministic
from ..errors import (
    DuplicateSection,
    MalformedBundle,
    MalformedHeaders,
    ResponseNotFound,
    UnknownCriticalSection,
)
from ..utils.logging import get_logger
from .headers import HeaderMap
from .version import KNOWN_SECTIONS, LENGTH_FIELD_LENGTH, MAGIC, Version

log = get_logger()

# additional info -> encoded head size, for heads that need not be minimal
_HEAD_LENGTHS = {24: 2, 25: 3, 26: 5, 27: 9}


def _item_spans(data: bytes, count: int, codec: CborCodec = DEFAULT_CODEC) -> List[Tuple[int, int]]:
    """(start, end) of each item of the definite-length CBOR array at the start of ``data``."""
    if not data:
        raise MalformedBundle("missing CBOR array head")
    info = data[0] & 0x1F
    if info < 24:
        pos = 1
    elif info in _HEAD_LENGTHS:
        pos = _HEAD_LENGTHS[info]
    else:
        raise MalformedBundle(f"CBOR array head uses additional info {info}")
    spans: List[Tuple[int, int]] = []
    for _ in range(count):
        try:
            _, rest = codec.decode_first(data[pos:])
        except ValueError as e:
            raise MalformedBundle(f"cannot delimit CBOR array item at byte {pos}: {e}") from e
        end = len(data) - len(rest)
        spans.append((pos, end))
        pos = end
    return spans


@dataclass
class Response:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __str__(self) -> str:
        lines = [f"status: {self.status}"]
        lines.extend(f"{k}: {v}" for k, v in sorted(self.headers.items()))
        lines.append(f"body: {len(self.body)} bytes")
        return "\n".join(lines)


class Bundle:
    """Parsed, read-only view of bundle bytes.

    The constructor validates the whole container; ``get_response`` resolves an
    index entry against the responses section and fails loudly when the URL is
    missing or its entry does not address a response.
    """

    def __init__(self, buffer: bytes, *, strict: bool = False, codec: CborCodec = DEFAULT_CODEC):
        self.codec = codec
        if strict:
            check_deterministic(buffer)
        try:
            top = codec.decode(buffer)
        except ValueError as e:
            raise MalformedBundle(f"bundle is not valid CBOR: {e}") from e
        if not isinstance(top, list):
            raise MalformedBundle("bundle must be a CBOR array")

        self.version = Version.from_array_length(len(top))
        layout = self.version.layout
        fields = layout.destructure(top)
        if fields.magic != MAGIC:
            raise MalformedBundle("header magic mismatch")
        self._check_length_field(fields.length, len(buffer))

        # sections sit just before the length field in both layouts
        top_spans = _item_spans(buffer, len(top), codec)
        start, end = top_spans[-2]
        self._section_bytes: Dict[str, bytes] = {}
        self.sections = self._load_sections(fields.section_lengths, fields.sections, buffer[start:end])
        critical = self.sections.get("critical")
        if critical is not None:
            if not isinstance(critical, list):
                raise MalformedBundle("critical section must be an array of section names")
            for name in critical:
                if not isinstance(name, str) or name not in KNOWN_SECTIONS:
                    raise UnknownCriticalSection(name)

        index = self.sections.get("index")
        if not isinstance(index, dict):
            raise MalformedBundle("bundle has no index section")
        responses = self.sections.get("responses")
        if not isinstance(responses, list):
            raise MalformedBundle("bundle has no responses section")
        self._index: Dict[str, Any] = index
        self._responses: List[Any] = responses
        self._response_offsets = self._compute_response_offsets(responses, self._section_bytes["responses"])

        self.primary_url: Optional[str] = fields.primary_url
        self.manifest_url: Optional[str] = None
        if self.version is Version.B1:
            self.manifest_url = self._url_section("manifest")
        else:
            self.primary_url = self._url_section("primary")
        log.info("wbn: decoded %s bundle with %d URLs", self.version.value, len(index))

    @staticmethod
    def _check_length_field(raw: Any, actual: int) -> None:
        if not isinstance(raw, bytes) or len(raw) != LENGTH_FIELD_LENGTH:
            raise MalformedBundle("length field must be an 8-byte byte string")
        declared = int.from_bytes(raw, "big")
        if declared != actual:
            raise MalformedBundle(f"length field says {declared} bytes, bundle has {actual}")

    def _load_sections(self, section_lengths_cbor: Any, sections: Any, sections_cbor: bytes) -> Dict[str, Any]:
        if not isinstance(section_lengths_cbor, bytes):
            raise MalformedBundle("section lengths must be a byte string")
        if not isinstance(sections, list):
            raise MalformedBundle("sections must be an array")
        try:
            section_lengths = self.codec.decode(section_lengths_cbor)
        except ValueError as e:
            raise MalformedBundle(f"section lengths are not valid CBOR: {e}") from e
        if not isinstance(section_lengths, list) or len(section_lengths) != 2 * len(sections):
            raise MalformedBundle("number of sections does not match the section lengths")
        spans = _item_spans(sections_cbor, len(sections), self.codec)
        out: Dict[str, Any] = {}
        for i, content in enumerate(sections):
            name, length = section_lengths[2 * i], section_lengths[2 * i + 1]
            if not isinstance(name, str):
                raise MalformedBundle(f"section name #{i} must be a text string")
            if name in out:
                raise DuplicateSection(f"duplicated section: {name}")
            start, end = spans[i]
            if length != end - start:
                raise MalformedBundle(f"section {name!r} declares {length} bytes, holds {end - start}")
            out[name] = content
            self._section_bytes[name] = sections_cbor[start:end]
        return out

    def _compute_response_offsets(self, responses: List[Any], responses_cbor: bytes) -> Dict[int, Tuple[int, int]]:
        # offset (relative to the section start) -> (response number, encoded length)
        return {
            start: (i, end - start)
            for i, (start, end) in enumerate(_item_spans(responses_cbor, len(responses), self.codec))
        }

    def _url_section(self, name: str) -> Optional[str]:
        value = self.sections.get(name)
        if value is not None and not isinstance(value, str):
            raise MalformedBundle(f"{name} section must be a text string")
        return value

    @property
    def urls(self) -> List[str]:
        return list(self._index.keys())

    def get_response(self, url: str) -> Response:
        entry = self._index.get(url)
        if entry is None:
            raise ResponseNotFound(f"no entry for {url}")
        offset, length = self.version.layout.parse_index_entry(url, entry)
        located = self._response_offsets.get(offset)
        if located is None:
            raise ResponseNotFound(f"{url}: no response at offset {offset}")
        i, actual = located
        response = self._responses[i]
        if actual != length:
            raise ResponseNotFound(f"{url}: index says {length} bytes, response at offset {offset} has {actual}")
        if not (isinstance(response, list) and len(response) == 2):
            raise ResponseNotFound(f"{url}: response must be [headers, body]")
        header_cbor, body = response
        if not isinstance(header_cbor, bytes) or not isinstance(body, bytes):
            raise MalformedHeaders(f"{url}: response headers and body must be byte strings")
        status, headers = HeaderMap.decode(header_cbor, self.codec)
        return Response(status=status, headers=headers, body=body)

    def __str__(self) -> str:
        lines = [f"Version: {self.version.value}"]
        if self.primary_url is not None:
            lines.append(f"Primary URL: {self.primary_url}")
        if self.manifest_url is not None:
            lines.append(f"Manifest URL: {self.manifest_url}")
        for url in self.urls:
            lines.append(f"> {url}")
            lines.append(str(self.get_response(url)))
        return "\n".join(lines)
