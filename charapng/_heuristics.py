"""
charapng._heuristics
====================

Last-resort search for plain card JSON anywhere in a file.

This is not a parser. It finds text that looks like the start of a card,
walks back to the ``{`` that encloses it, and brace-counts forward to the
matching ``}``. That only works because card JSON does not, in practice,
contain unbalanced braces inside string values, and it only finds cards
stored as plain JSON, never base64.

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
import itertools
import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional

from ._codec import find_enclosing_braces, match_braces, parse_json
from ._errors import CardDecodeError
from .card import is_character_card

__all__ = [
    "CARD_PATTERNS",
    "matching_patterns",
    "iter_pattern_candidates",
    "search_patterns",
]

_log = logging.getLogger(__name__)

_SPEC = re.compile(r'"spec":\s*"chara_card_v[23]"')
_SPEC_OBJECT = re.compile(r'\{"spec":"chara_card_v[23]"')
# "data": { ... "name": "..." with no } in between, found token by token
# rather than with a single backtracking [^}]* expression
_DATA_NAME_TOKENS = re.compile(
    r'(?P<data>"data":\s*\{)|(?P<name>"name":\s*"[^"]+")|\}'
)


def _match_starts(
    pattern: "re.Pattern[str]",
) -> Callable[[str], Iterator[int]]:
    def starts(text: str) -> Iterator[int]:
        return (match.start() for match in pattern.finditer(text))

    return starts


def _data_name_starts(text: str) -> Iterator[int]:
    opened: List[int] = []
    for token in _DATA_NAME_TOKENS.finditer(text):
        if token.group("data") is not None:
            opened.append(token.start())
        elif token.group("name") is not None:
            yield from opened
            opened.clear()
        else:
            opened.clear()


# Pattern name -> function yielding the start of each match, in order
CARD_PATTERNS: Dict[str, Callable[[str], Iterator[int]]] = {
    "spec": _match_starts(_SPEC),
    "data_name": _data_name_starts,
    "spec_object": _match_starts(_SPEC_OBJECT),
}

# Upper bound on matches examined per pattern
_MAX_MATCHES_PER_PATTERN = 64


def matching_patterns(text: str) -> List[str]:
    """Returns the names of the `CARD_PATTERNS` that occur in `text`."""
    return [
        name
        for name, starts in CARD_PATTERNS.items()
        if next(starts(text), None) is not None
    ]


def iter_pattern_candidates(data: bytes) -> Iterator[Any]:
    """
    Yields every JSON value recovered around a pattern match,
    in `CARD_PATTERNS` order.

    `data` is read as Latin-1, so every byte maps to one character
    and offsets line up with the raw file.
    """
    text = data.decode("latin-1")
    tried = set()
    # Brace pairs found by earlier scans; a scan that runs to the end
    # of the file unclosed settles every brace it passed at once
    closing: Dict[int, Optional[int]] = {}
    for name, starts in CARD_PATTERNS.items():
        positions = list(
            itertools.islice(starts(text), _MAX_MATCHES_PER_PATTERN)
        )
        enclosing = find_enclosing_braces(
            text, (pos for pos in positions if text[pos] != "{")
        )
        for pos in positions:
            start = pos if text[pos] == "{" else enclosing[pos]
            if start < 0 or start in tried:
                continue
            tried.add(start)
            if start not in closing:
                closing.update(match_braces(text, start))
            end = closing.get(start)
            if end is None:
                _log.debug("%s match at %d is never closed", name, start)
                continue
            try:
                # Undo the Latin-1 mapping before parsing as UTF-8
                yield parse_json(text[start : end + 1].encode("latin-1"))
            except CardDecodeError as e:
                _log.debug("discarding %s match at %d: %s", name, start, e)


def search_patterns(data: bytes) -> Optional[dict]:
    """
    Returns the first value from `iter_pattern_candidates`
    that `is_character_card` accepts, or None.
    """
    for candidate in iter_pattern_candidates(data):
        if is_character_card(candidate):
            return candidate
    return None
