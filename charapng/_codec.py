"""
charapng._codec
===============

Payload decoding shared by every extraction strategy:
base64 with the variations producers emit, UTF-8, JSON,
and recovery of a balanced JSON object from surrounding bytes.

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
import base64
import binascii
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from ._errors import CardDecodeError

try:
    import orjson as json
except ImportError:
    import json

__all__ = [
    "decode_base64",
    "decode_card_payload",
    "parse_json",
    "parse_json_lenient",
    "find_enclosing_brace",
    "find_enclosing_braces",
    "find_balanced_object",
    "match_braces",
]

_URL_SAFE_CHARS = frozenset(b"-_")

_BRACES = re.compile(r"[{}]")
# Characters that change the state of a JSON scan
_JSON_STRUCTURE = re.compile(r'[{}"\\]')


def decode_base64(data: Union[str, bytes]) -> bytes:
    """
    Decodes base64 the way lenient producers write it.

    Whitespace is ignored, missing padding is restored,
    and the URL-safe alphabet is accepted.

    Raises:
        CardDecodeError: If `data` is empty or not base64
    """
    if isinstance(data, str):
        try:
            data = data.encode("ascii")
        except UnicodeEncodeError as e:
            raise CardDecodeError(
                "payload is not base64: contains non-ASCII characters"
            ) from e
    compact = b"".join(bytes(data).split()).rstrip(b"=")
    if not compact:
        raise CardDecodeError("payload is empty")
    altchars = b"-_" if _URL_SAFE_CHARS.intersection(compact) else None
    padded = compact + b"=" * (-len(compact) % 4)
    try:
        return base64.b64decode(padded, altchars, validate=True)
    except binascii.Error as e:
        raise CardDecodeError("payload is not base64 encoded") from e


def parse_json(raw: Union[str, bytes]) -> Any:
    """
    Parses UTF-8 JSON text.

    Raises:
        CardDecodeError: If `raw` is not UTF-8 or not JSON
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise CardDecodeError("payload is not UTF-8 text") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise CardDecodeError("payload could not be parsed as JSON") from e
    except RecursionError as e:
        # Only the standard library parser recurses per nesting level
        raise CardDecodeError("payload is nested too deeply") from e


def decode_card_payload(text: Union[str, bytes]) -> Any:
    """
    Decodes the body of a character text chunk.

    The body is normally base64-encoded JSON;
    a body that already starts with ``{`` is parsed as plain JSON.

    Raises:
        CardDecodeError: If the body is neither
    """
    stripped = text.strip()
    if stripped[:1] in ("{", b"{"):
        return parse_json(stripped)
    return parse_json(decode_base64(stripped))


def parse_json_lenient(raw: bytes) -> Any:
    """
    Like `parse_json`, but falls back to the first balanced
    ``{...}`` object in `raw` when there are leading or trailing bytes,
    as there are when a payload was recovered by scanning.

    Raises:
        CardDecodeError: If no JSON object can be recovered
    """
    try:
        return parse_json(raw)
    except CardDecodeError as e:
        error = e
    text = raw.decode("utf-8", errors="replace")
    start = text.find("{")
    if start < 0:
        raise error
    candidate = find_balanced_object(text, start)
    if candidate is None:
        raise error
    return parse_json(candidate)


def find_enclosing_brace(text: str, pos: int) -> int:
    """
    Returns the index of the nearest ``{`` before `pos`
    that is not closed again before `pos`, or -1.

    Braces inside strings are not recognized.
    """
    return find_enclosing_braces(text, (pos,))[pos]


def find_enclosing_braces(
    text: str, positions: Iterable[int]
) -> Dict[int, int]:
    """
    `find_enclosing_brace` for many positions in one forward pass.

    Returns:
        A mapping of each position to its enclosing ``{``, or -1
    """
    queries = sorted(set(positions))
    enclosing: Dict[int, int] = {}
    if not queries:
        return enclosing
    opened: List[int] = []
    pending = iter(queries)
    query = next(pending)
    for match in _BRACES.finditer(text, 0, queries[-1]):
        i = match.start()
        while query is not None and query <= i:
            enclosing[query] = opened[-1] if opened else -1
            query = next(pending, None)
        if query is None:
            break
        if text[i] == "{":
            opened.append(i)
        elif opened:
            opened.pop()
    while query is not None:
        enclosing[query] = opened[-1] if opened else -1
        query = next(pending, None)
    return enclosing


def find_balanced_object(text: str, start: int) -> Optional[str]:
    """
    Returns the substring from the ``{`` at `start`
    through its matching ``}``, or None if it is never closed.

    Braces inside JSON string literals are ignored.
    """
    end = match_braces(text, start).get(start)
    if end is None:
        return None
    return text[start : end + 1]


def match_braces(text: str, start: int) -> Dict[int, Optional[int]]:
    """
    Scans forward from the ``{`` at `start` until it is closed
    or `text` ends.

    Returns:
        The index of the matching ``}`` for every ``{`` the scan
        passed outside JSON string literals, `start` included;
        None for those still open at the end of `text`.
        Empty if there is no ``{`` at `start`
    """
    pairs: Dict[int, Optional[int]] = {}
    if text[start : start + 1] != "{":
        return pairs
    opened: List[int] = []
    in_string = False
    escaped_at = -1
    for match in _JSON_STRUCTURE.finditer(text, start):
        i = match.start()
        char = text[i]
        if in_string:
            if i == escaped_at:
                continue
            if char == "\\":
                escaped_at = i + 1
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            opened.append(i)
        elif char == "}":
            pairs[opened.pop()] = i
            if not opened:
                return pairs
    for i in opened:
        pairs[i] = None
    return pairs
