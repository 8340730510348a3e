"""
charapng._text
==============

Decode PNG text chunks into keyword/text pairs.

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
import logging
import zlib
from typing import Iterable, List, NamedTuple, Optional, Sequence

from ._png import RawChunk

__all__ = ["TEXT_CHUNK_TYPES", "TextPair", "decode_text_chunks"]

_log = logging.getLogger(__name__)

# See http://www.libpng.org/pub/png/spec/1.2/PNG-Chunks.html#C.Anc-text
TEXT_CHUNK_TYPES = (b"tEXt", b"zTXt", b"iTXt")

# Compressed text is inflated at most this far
_MAX_INFLATED_TEXT_LEN = 16 << 20


class TextPair(NamedTuple):
    keyword: str
    text: str


def decode_text_chunks(
    chunks: Iterable[RawChunk],
    chunk_types: Sequence[bytes] = TEXT_CHUNK_TYPES,
) -> List[TextPair]:
    """
    Decodes the text chunks among `chunks`.

    Notes:
        ``tEXt`` payloads are split at the first null byte into
        a Latin-1 keyword and a text body. The body is decoded as UTF-8,
        replacing invalid sequences, since card producers write UTF-8
        regardless of what the PNG specification says.

        ``zTXt`` and ``iTXt`` chunks are decoded the same way after
        inflating or unwrapping their payload. Malformed chunks,
        and chunks with an empty keyword, are skipped.

    Args:
        chunks: Chunks in file order
        chunk_types: Which text chunk types to decode

    Returns:
        Keyword/text pairs in file order; empty if no text chunks were found
    """
    decoders = {
        b"tEXt": _decode_text,
        b"zTXt": _decode_compressed_text,
        b"iTXt": _decode_international_text,
    }
    pairs = []
    for chunk in chunks:
        if chunk.type not in chunk_types or chunk.type not in decoders:
            continue
        pair = decoders[chunk.type](chunk.payload)
        if pair is None:
            _log.debug("skipping malformed %s chunk", chunk.name)
            continue
        _log.debug(
            "%s chunk: keyword %r, %d character(s) of text",
            chunk.name,
            pair.keyword,
            len(pair.text),
        )
        pairs.append(pair)
    return pairs


def _split_keyword(data: bytes):
    keyword, sep, rest = data.partition(b"\0")
    if not sep or not keyword:
        return None, b""
    return keyword.decode("latin-1"), rest


def _decode_text(data: bytes) -> Optional[TextPair]:
    # keyword \0 text
    keyword, text = _split_keyword(data)
    if keyword is None:
        return None
    return TextPair(keyword, text.decode("utf-8", errors="replace"))


def _decode_compressed_text(data: bytes) -> Optional[TextPair]:
    # keyword \0 compression method (1 byte) compressed text
    keyword, rest = _split_keyword(data)
    if keyword is None or not rest or rest[0] != 0:
        return None
    text = _inflate(rest[1:])
    if text is None:
        return None
    return TextPair(keyword, text.decode("utf-8", errors="replace"))


def _decode_international_text(data: bytes) -> Optional[TextPair]:
    # keyword \0 compression flag (1 byte) compression method (1 byte)
    # language tag \0 translated keyword \0 text
    keyword, rest = _split_keyword(data)
    if keyword is None or len(rest) < 2:
        return None
    compressed, method = rest[0], rest[1]
    parts = rest[2:].split(b"\0", 2)
    if len(parts) < 3:
        return None
    text = parts[2]
    if compressed:
        if method != 0:
            return None
        text = _inflate(text)
        if text is None:
            return None
    return TextPair(keyword, text.decode("utf-8", errors="replace"))


def _inflate(data: bytes) -> Optional[bytes]:
    decompressor = zlib.decompressobj()
    try:
        inflated = decompressor.decompress(data, _MAX_INFLATED_TEXT_LEN)
    except zlib.error as e:
        _log.debug("could not inflate compressed text: %s", e)
        return None
    if decompressor.unconsumed_tail:
        _log.debug(
            "compressed text inflates past %d bytes, ignoring it",
            _MAX_INFLATED_TEXT_LEN,
        )
        return None
    return inflated
