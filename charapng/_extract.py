"""
charapng._extract
=================

The extraction pipeline: an ordered chain of strategies,
each of which either recovers a card or lets the next one try.

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
import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from ._codec import decode_card_payload
from ._errors import CardDecodeError, InvalidPNGError
from ._exif import parse_exif
from ._heuristics import matching_patterns, search_patterns
from ._locate import CARD_KEYWORDS, locate_card
from ._png import MAX_CHUNK_LENGTH, RawChunk, has_png_signature, iter_chunks
from ._source import FileArgument, load_bytes
from ._text import TEXT_CHUNK_TYPES, decode_text_chunks
from .card import CharacterCard, is_character_card

__all__ = [
    "ExtractOptions",
    "extract_card",
    "extract_card_async",
    "inspect",
]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractOptions:
    """
    Settings for one extraction call.

    Attributes:
        keywords: Card text chunk keywords, in order of precedence.
            The default reads V3 (``ccv3``) cards before V2 (``chara``)
        text_chunk_types: Which PNG text chunk types are decoded
        max_chunk_length: Chunks declaring a longer length end the
            chunk walk, keeping the chunks read before them
        verify_crc: Treat a chunk CRC mismatch as a structural error
        use_exif: Fall back to searching ``eXIf`` chunks
        use_heuristics: Fall back to searching the whole file
            for plain card JSON
    """

    keywords: Tuple[str, ...] = CARD_KEYWORDS
    text_chunk_types: Tuple[bytes, ...] = TEXT_CHUNK_TYPES
    max_chunk_length: int = MAX_CHUNK_LENGTH
    verify_crc: bool = False
    use_exif: bool = True
    use_heuristics: bool = True


_DEFAULT_OPTIONS = ExtractOptions()


class _Scan(NamedTuple):
    data: bytes
    chunks: List[RawChunk]
    error: Optional[InvalidPNGError]


def _scan(data: bytes, options: ExtractOptions) -> _Scan:
    chunks = []
    try:
        for chunk in iter_chunks(
            data,
            max_chunk_length=options.max_chunk_length,
            verify_crc=options.verify_crc,
        ):
            chunks.append(chunk)
    except InvalidPNGError as e:
        _log.warning("%s; continuing with %d chunk(s)", e, len(chunks))
        return _Scan(data, chunks, e)
    _log.debug(
        "read %d chunk(s): %s",
        len(chunks),
        ", ".join(chunk.name for chunk in chunks),
    )
    return _Scan(data, chunks, None)


def _from_text_chunks(scan: _Scan, options: ExtractOptions) -> Optional[dict]:
    pairs = decode_text_chunks(scan.chunks, options.text_chunk_types)
    if not pairs:
        _log.debug("no text chunks found")
        return None
    return locate_card(pairs, options.keywords)


def _from_exif(scan: _Scan, options: ExtractOptions) -> Optional[dict]:
    if not options.use_exif:
        return None
    for chunk in scan.chunks:
        if chunk.type != b"eXIf":
            continue
        card = parse_exif(chunk.payload, options.keywords)
        if card is not None:
            return card
    return None


def _from_patterns(scan: _Scan, options: ExtractOptions) -> Optional[dict]:
    if not options.use_heuristics:
        return None
    return search_patterns(scan.data)


_STRATEGIES: Tuple[
    Tuple[str, Callable[[_Scan, ExtractOptions], Optional[dict]]], ...
] = (
    ("text", _from_text_chunks),
    ("exif", _from_exif),
    ("patterns", _from_patterns),
)


def _materialize(value: dict, strategy: str) -> Optional[CharacterCard]:
    try:
        return CharacterCard.from_dict(value)
    except (ValueError, RecursionError) as e:
        # Valid cards nested too deeply to copy end up here
        _log.warning("discarding card found via %s: %s", strategy, e)
        return None


def _run(
    data: bytes, options: ExtractOptions
) -> Tuple[Optional[CharacterCard], Optional[str], Optional[_Scan]]:
    if not has_png_signature(data):
        _log.info("not a PNG file: incorrect or missing PNG signature")
        return None, None, None
    scan = _scan(data, options)
    for name, strategy in _STRATEGIES:
        value = strategy(scan, options)
        if value is None:
            continue
        card = _materialize(value, name)
        if card is not None:
            return card, name, scan
    return None, None, scan


def extract_card(
    file: FileArgument, options: Optional[ExtractOptions] = None
) -> Optional[CharacterCard]:
    """
    Extracts the character card embedded in a PNG file.

    Notes:
        Strategies are tried in order until one produces a value
        that `is_character_card` accepts:

        1. Text chunks keyed ``ccv3`` then ``chara``
           (order set by `ExtractOptions.keywords`),
           holding base64-encoded JSON
        2. Strings and marked base64 runs inside ``eXIf`` chunks
        3. Plain card JSON found anywhere in the file

        Corrupt, truncated and non-PNG input is never an error here:
        the failure is logged, and the result is None.
        Details are logged to the ``charapng`` loggers.

    Args:
        file: A ``bytes`` object, a filesystem path,
            or a readable binary file-like object representing a PNG
        options: Extraction settings; defaults to `ExtractOptions()`

    Returns:
        A `CharacterCardV3` or `CharacterCardV2`, or None if the file
        does not contain a valid character card

    Raises:
        TypeError: If `file` is not one of the supported types

    Examples:
        Reading from a path::

            import charapng

            card = charapng.extract_card("avatar.png")

            if card is None:
                print("The file does not contain valid character data.")
            else:
                print(card.name, "->", card.spec)

        Reading V2 cards in preference to V3 cards::

            options = charapng.ExtractOptions(keywords=("chara", "ccv3"))
            card = charapng.extract_card("avatar.png", options)
    """
    if options is None:
        options = _DEFAULT_OPTIONS
    try:
        data = load_bytes(file)
    except OSError as e:
        _log.warning("could not read file: %s", e)
        return None
    card, strategy, _ = _run(data, options)
    if card is None:
        _log.info("no character card found")
        return None
    _log.info(
        "found %s character card %r via %s", card.spec, card.name, strategy
    )
    return card


async def extract_card_async(
    file: FileArgument, options: Optional[ExtractOptions] = None
) -> Optional[CharacterCard]:
    """
    Awaitable form of `extract_card`.

    The file is read and parsed in the event loop's default executor.
    No timeout is applied; wrap the call in `asyncio.wait_for` for one.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, functools.partial(extract_card, file, options)
    )


def _describe_text_pair(pair, keywords) -> Dict[str, Any]:
    entry = {
        "keyword": pair.keyword,
        "length": len(pair.text),
        "is_card": False,
    }
    if pair.keyword.lower() in keywords:
        try:
            candidate = decode_card_payload(pair.text)
            entry["is_card"] = is_character_card(candidate)
        except CardDecodeError as e:
            entry["error"] = str(e)
    return entry


def inspect(
    file: FileArgument, options: Optional[ExtractOptions] = None
) -> Dict[str, Any]:
    """
    Describes what the extraction pipeline sees in a file.

    Intended for troubleshooting files that do not yield a card.
    The report is JSON-serializable and contains:

    - ``valid_signature``: whether the file starts with the PNG signature
    - ``size``: the file size in bytes
    - ``chunks``: type and length of every chunk read
    - ``error``: the structural or I/O error that stopped reading, if any
    - ``text_chunks``: keyword and text length of each text chunk,
      and for card keywords whether the payload is a valid card
    - ``exif_chunks``: the number of ``eXIf`` chunks
    - ``patterns``: names of the card JSON patterns found in the raw file
    - ``strategy``: the strategy that produced a card, or None

    Raises:
        TypeError: If `file` is not one of the supported types
    """
    if options is None:
        options = _DEFAULT_OPTIONS
    report: Dict[str, Any] = {
        "valid_signature": False,
        "size": 0,
        "chunks": [],
        "error": None,
        "text_chunks": [],
        "exif_chunks": 0,
        "patterns": [],
        "strategy": None,
    }
    try:
        data = load_bytes(file)
    except OSError as e:
        report["error"] = str(e)
        return report

    report["size"] = len(data)
    report["valid_signature"] = has_png_signature(data)
    report["patterns"] = matching_patterns(data.decode("latin-1"))
    _, strategy, scan = _run(data, options)
    report["strategy"] = strategy
    if scan is None:
        report["error"] = "incorrect or missing PNG signature"
        return report

    if scan.error is not None:
        report["error"] = str(scan.error)
    report["chunks"] = [
        {"type": chunk.name, "length": chunk.length} for chunk in scan.chunks
    ]
    keywords = {keyword.lower() for keyword in options.keywords}
    report["text_chunks"] = [
        _describe_text_pair(pair, keywords)
        for pair in decode_text_chunks(scan.chunks, options.text_chunk_types)
    ]
    report["exif_chunks"] = sum(
        1 for chunk in scan.chunks if chunk.type == b"eXIf"
    )
    return report
