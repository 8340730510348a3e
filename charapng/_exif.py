"""
charapng._exif
==============

Recover character cards stored in an ``eXIf`` chunk.

Some producers put the card into the PNG's embedded EXIF block instead of
a text chunk. The layout they write is not reliably a well-formed TIFF
structure, so two independent strategies are used:

- Walking the first Image File Directory (and the Exif sub-directory, if
  one is linked) for long string values holding base64 JSON.
- Scanning the raw bytes for the markers ``Chara\\0`` and ``Ccv 3\\0``
  and taking the run of base64 characters after each one.
  This is the strategy that finds cards in most files seen in practice.

License:
    Copyright (c) 2023 Eta

    This software is provided 'as-is', without any express or implied
    warranty. In no event will the authors be held liable for any damages
    arising from the use of this software.

    Permission is granted to anyone to use this software for any purpose,
    including commercial applications, and to alter it and redistribute it
    freely, subject to the following restrictions:

    1. The origin of this software must not be misrepresented; you must not
       claim that you wrote the original software. If you use this software
       in a product, an acknowledgment in the product documentation would be
       appreciated but is not required.
    2. Altered source versions must be plainly marked as such, and must not be
       misrepresented as being the original software.
    3. This notice may not be removed or altered from any source distribution.
"""
import bisect
import itertools
import logging
import re
import struct
from typing import Any, Iterator, List, NamedTuple, Optional, Sequence

from ._codec import decode_base64, parse_json, parse_json_lenient
from ._errors import CardDecodeError
from ._locate import CARD_KEYWORDS
from .card import is_character_card

__all__ = [
    "IFDEntry",
    "detect_byte_order",
    "read_ifd_strings",
    "scan_markers",
    "iter_exif_candidates",
    "parse_exif",
]

_log = logging.getLogger(__name__)

# TIFF Structure
# See https://www.itu.int/itudoc/itu-t/com16/tiff-fx/docs/tiff6.pdf
#
# A TIFF header consists of:
# - 2 byte byte-order mark, "II" (little-endian) or "MM" (big-endian)
# - 2 byte magic number, 42
# - 4 byte offset of the first IFD, relative to the start of the header
#
# An IFD consists of a 2 byte entry count followed by 12 byte entries:
# - 2 byte tag
# - 2 byte field type
# - 4 byte value count
# - 4 byte value, or offset of the value if it does not fit in 4 bytes
_BYTE_ORDER_SCAN_LEN = 20
_EXIF_HEADER = b"Exif\0\0"

_TIFF_TYPE_ASCII = 2
_TIFF_TYPE_LONG = 4
_TIFF_TYPE_UNDEFINED = 7
_TAG_EXIF_IFD = 0x8769

# Upper bound on entries read from one directory
_MAX_IFD_ENTRIES = 1024

# Only string values longer than this are considered
_MIN_IFD_STRING_COUNT = 20
# Only decoded strings longer than this are tried as base64
_MIN_IFD_BASE64_LEN = 50

# UserComment values start with an 8 byte character code
_USER_COMMENT_CODES = {
    b"ASCII\0\0\0": "utf-8",
    b"UNICODE\0": None,
    b"\0" * 8: "utf-8",
}

_BASE64_STRING = re.compile(r"[A-Za-z0-9+/=\s]+")
_BASE64_ALPHABET = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/="
)
_BASE64_STRETCH = re.compile(rb"[A-Za-z0-9+/=]+")
_NON_BASE64_BYTES = bytes(b for b in range(256) if b not in _BASE64_ALPHABET)

# Keyword -> marker written in front of the base64 payload
_MARKERS = {
    "chara": b"Chara\0",
    "ccv3": b"Ccv 3\0",
}
# A base64 run ends at the first other byte once it is this long
_MIN_MARKER_RUN_LEN = 50
# Runs of this length or shorter cannot hold a card and are not decoded
_MIN_MARKER_PAYLOAD_LEN = 100


class IFDEntry(NamedTuple):
    tag: int
    type: int
    count: int
    value_offset: int
    # Offset of the 4 byte value field itself, for values stored inline
    field_offset: int


def detect_byte_order(payload: bytes):
    """
    Locates the TIFF header in an EXIF block.

    Returns:
        A ``(byte_order, header_offset)`` pair, where `byte_order` is a
        `struct` prefix. If no byte-order mark is found near the start,
        big-endian is assumed, with the header right after an optional
        ``Exif\\0\\0`` prefix.
    """
    window = payload[:_BYTE_ORDER_SCAN_LEN]
    found = [
        (index, order)
        for index, order in (
            (window.find(b"II"), "<"),
            (window.find(b"MM"), ">"),
        )
        if index >= 0
    ]
    if found:
        index, order = min(found)
        return order, index
    return ">", len(_EXIF_HEADER) if payload.startswith(_EXIF_HEADER) else 0


def _read_ifd(
    payload: bytes, order: str, base: int, ifd_offset: int
) -> List[IFDEntry]:
    start = base + ifd_offset
    if start < 0 or start + 2 > len(payload):
        return []
    (count,) = struct.unpack_from(order + "H", payload, start)
    available = (len(payload) - start - 2) // 12
    count = min(count, available, _MAX_IFD_ENTRIES)
    entry_format = struct.Struct(order + "HHII")
    entries = []
    for i in range(count):
        position = start + 2 + i * 12
        tag, field_type, value_count, value = entry_format.unpack_from(
            payload, position
        )
        entries.append(
            IFDEntry(tag, field_type, value_count, value, position + 8)
        )
    return entries


def _entry_bytes(payload: bytes, base: int, entry: IFDEntry) -> bytes:
    if entry.count <= 4:
        location = entry.field_offset
    else:
        location = base + entry.value_offset
    # Values running past the block are cut short, not rejected
    return payload[location : location + entry.count]


def _decode_user_comment(value: bytes, order: str) -> str:
    code, body = value[:8], value[8:]
    if code not in _USER_COMMENT_CODES:
        return value.decode("utf-8", errors="replace")
    encoding = _USER_COMMENT_CODES[code]
    if encoding is None:
        encoding = "utf-16-le" if order == "<" else "utf-16-be"
    return body.decode(encoding, errors="replace")


def read_ifd_strings(payload: bytes) -> List[str]:
    """
    Reads the long string values of the first IFD of an EXIF block,
    following the link to the Exif sub-IFD if there is one.

    ASCII values, and UNDEFINED values such as ``UserComment``,
    longer than 20 bytes are returned with null terminators
    and surrounding whitespace removed.
    Structural problems end the walk early instead of raising.
    """
    order, base = detect_byte_order(payload)
    if base + 8 > len(payload):
        return []
    (ifd_offset,) = struct.unpack_from(order + "I", payload, base + 4)
    _log.debug(
        "EXIF block: %s-endian TIFF header at offset %d, first IFD at %d",
        "little" if order == "<" else "big",
        base,
        ifd_offset,
    )

    strings = []
    pending = [ifd_offset]
    visited = set()
    while pending:
        offset = pending.pop(0)
        if offset in visited:
            continue
        visited.add(offset)
        for entry in _read_ifd(payload, order, base, offset):
            if (
                entry.tag == _TAG_EXIF_IFD
                and entry.type == _TIFF_TYPE_LONG
                and entry.count == 1
            ):
                pending.append(entry.value_offset)
                continue
            if entry.count <= _MIN_IFD_STRING_COUNT:
                continue
            if entry.type == _TIFF_TYPE_ASCII:
                value = _entry_bytes(payload, base, entry)
                text = value.decode("utf-8", errors="replace")
            elif entry.type == _TIFF_TYPE_UNDEFINED:
                value = _entry_bytes(payload, base, entry)
                text = _decode_user_comment(value, order)
            else:
                continue
            text = text.strip("\0").strip()
            if text:
                _log.debug(
                    "IFD entry 0x%04x: %d character string",
                    entry.tag,
                    len(text),
                )
                strings.append(text)
    return strings


def _ifd_candidates(payload: bytes) -> Iterator[Any]:
    try:
        strings = read_ifd_strings(payload)
    except struct.error as e:
        _log.debug("EXIF block is malformed: %s", e)
        return
    for text in strings:
        try:
            if text.startswith("{"):
                candidate = parse_json(text)
            elif len(text) > _MIN_IFD_BASE64_LEN and _BASE64_STRING.fullmatch(
                text
            ):
                candidate = parse_json_lenient(decode_base64(text))
            else:
                continue
        except CardDecodeError as e:
            _log.debug("discarding IFD string: %s", e)
            continue
        if (
            isinstance(candidate, dict)
            and "chara_card" in str(candidate.get("spec", ""))
            and isinstance(candidate.get("data"), dict)
        ):
            yield candidate
        else:
            _log.debug("IFD string decoded, but does not look like a card")


def scan_markers(payload: bytes, marker: bytes) -> List[bytes]:
    """
    Returns the base64 run following each occurrence of `marker`.

    Bytes outside the base64 alphabet are skipped until the run
    reaches 50 characters; after that, the first such byte ends it.
    """
    runs = []
    start = payload.find(marker)
    if start < 0:
        return runs
    # Maximal base64 stretches after the first marker, and the running
    # total of their lengths, so each run costs two bisections
    stretches = [
        match.span()
        for match in _BASE64_STRETCH.finditer(payload, start + len(marker))
    ]
    ends = [end for _, end in stretches]
    totals = list(
        itertools.accumulate(end - begin for begin, end in stretches)
    )
    while start >= 0:
        pos = start + len(marker)
        first = bisect.bisect_right(ends, pos)
        if first == len(stretches):
            runs.append(b"")
        else:
            # Characters of the first stretch at or after `pos`
            head = ends[first] - max(stretches[first][0], pos)
            needed = _MIN_MARKER_RUN_LEN - head + totals[first]
            last = min(
                bisect.bisect_left(totals, needed, first), len(stretches) - 1
            )
            runs.append(
                payload[pos : ends[last]].translate(None, _NON_BASE64_BYTES)
            )
        start = payload.find(marker, pos)
    return runs


def _base64_prefixes(run: bytes) -> Iterator[bytes]:
    # The greedy run may have swallowed unrelated letters after the payload
    yield run
    padding = run.find(b"=")
    if padding >= 0:
        end = padding
        while end < len(run) and run[end] == ord("="):
            end += 1
        if end < len(run):
            yield run[:end]
    aligned = len(run) - len(run) % 4
    if 0 < aligned < len(run):
        yield run[:aligned]


def _marker_candidates(
    payload: bytes, keywords: Sequence[str]
) -> Iterator[Any]:
    for keyword in keywords:
        marker = _MARKERS.get(keyword.lower())
        if marker is None:
            continue
        for run in scan_markers(payload, marker):
            _log.debug(
                "found %r marker followed by %d base64 character(s)",
                marker,
                len(run),
            )
            if len(run) <= _MIN_MARKER_PAYLOAD_LEN:
                continue
            for prefix in _base64_prefixes(run):
                try:
                    yield parse_json_lenient(decode_base64(prefix))
                    break
                except CardDecodeError as e:
                    _log.debug("discarding %r marker payload: %s", marker, e)


def iter_exif_candidates(
    payload: bytes, keywords: Sequence[str] = CARD_KEYWORDS
) -> Iterator[Any]:
    """
    Yields every JSON value recovered from an EXIF block,
    IFD strings first, then marker payloads in `keywords` order.
    """
    yield from _ifd_candidates(payload)
    yield from _marker_candidates(payload, keywords)


def parse_exif(
    payload: bytes, keywords: Sequence[str] = CARD_KEYWORDS
) -> Optional[dict]:
    """
    Returns the first value from `iter_exif_candidates`
    that `is_character_card` accepts, or None.

    Args:
        payload: The data of an ``eXIf`` chunk
        keywords: Card keywords, in order of precedence

    Returns:
        The card's JSON object, or None if no strategy recovers one
    """
    for candidate in iter_exif_candidates(payload, keywords):
        if is_character_card(candidate):
            return candidate
    return None
