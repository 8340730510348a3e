"""
charapng._locate
================

Find the character card among decoded PNG text pairs.

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
from typing import Any, Iterable, Iterator, Optional, Sequence

from ._codec import decode_card_payload
from ._errors import CardDecodeError
from ._text import TextPair
from .card import is_character_card

__all__ = ["CARD_KEYWORDS", "iter_card_candidates", "locate_card"]

_log = logging.getLogger(__name__)

# V3 cards take precedence over V2 cards embedded in the same file
CARD_KEYWORDS = ("ccv3", "chara")


def iter_card_candidates(
    text_pairs: Iterable[TextPair],
    keywords: Sequence[str] = CARD_KEYWORDS,
) -> Iterator[Any]:
    """
    Yields the decoded JSON of every text pair whose keyword
    matches one of `keywords`, case-insensitively.

    Pairs are visited keyword by keyword in `keywords` order,
    and in file order within a keyword.
    Pairs that fail to decode are logged and skipped.
    """
    text_pairs = list(text_pairs)
    for keyword in keywords:
        keyword = keyword.lower()
        for pair in text_pairs:
            if pair.keyword.lower() != keyword:
                continue
            try:
                yield decode_card_payload(pair.text)
            except CardDecodeError as e:
                _log.debug("discarding %r text chunk: %s", pair.keyword, e)


def locate_card(
    text_pairs: Iterable[TextPair],
    keywords: Sequence[str] = CARD_KEYWORDS,
) -> Optional[dict]:
    """
    Returns the first candidate from `iter_card_candidates`
    that `is_character_card` accepts, or None.
    """
    for candidate in iter_card_candidates(text_pairs, keywords):
        if is_character_card(candidate):
            return candidate
        _log.debug("text chunk payload decoded, but is not a character card")
    return None
