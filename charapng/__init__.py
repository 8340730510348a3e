"""
charapng
========

Extract character card JSON embedded in PNG files.

Character cards (``chara_card_v2`` / ``chara_card_v3``) are normally stored
as base64-encoded JSON in a ``tEXt`` chunk keyed ``chara`` or ``ccv3``.
Some producers store them inside an ``eXIf`` chunk instead, or as plain
JSON; those are recovered by fallback strategies.

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

from ._errors import (
    CardDecodeError,
    InvalidPNGError,
    NotAPNGError,
    TruncatedPNGError,
)
from ._exif import parse_exif
from ._extract import ExtractOptions, extract_card, extract_card_async, inspect
from ._heuristics import search_patterns
from ._locate import CARD_KEYWORDS, locate_card
from ._png import MAX_CHUNK_LENGTH, RawChunk, has_png_signature, read_chunks
from ._source import load_bytes
from ._text import TEXT_CHUNK_TYPES, TextPair, decode_text_chunks
from .card import (
    CharacterCard,
    CharacterCardV2,
    CharacterCardV3,
    CharacterData,
    is_character_card,
)

__all__ = [
    "extract_card",
    "extract_card_async",
    "inspect",
    "is_character_card",
    "load_bytes",
    "has_png_signature",
    "read_chunks",
    "decode_text_chunks",
    "locate_card",
    "parse_exif",
    "search_patterns",
    "ExtractOptions",
    "CharacterCard",
    "CharacterCardV2",
    "CharacterCardV3",
    "CharacterData",
    "RawChunk",
    "TextPair",
    "CARD_KEYWORDS",
    "TEXT_CHUNK_TYPES",
    "MAX_CHUNK_LENGTH",
    "InvalidPNGError",
    "NotAPNGError",
    "TruncatedPNGError",
    "CardDecodeError",
]

# Diagnostics are opt-in: configure the "charapng" logger to see them
logging.getLogger(__name__).addHandler(logging.NullHandler())
