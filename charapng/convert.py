"""
charapng.convert
================

Pure transforms over validated cards, for the code that consumes them:
turning a card into an interactive book record, into the opening
messages of a chat, and building a new card from scratch.

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
import re
from typing import Any, Dict, List, Optional, Sequence

from .card import SPEC_V3, CharacterCard

__all__ = [
    "BOOK_SPEC",
    "to_book_card",
    "build_chat_prompt",
    "create_character_card",
]

BOOK_SPEC = "interactive_book_v1"

_CHAR_PLACEHOLDER = re.compile(r"\{\{char\}\}", re.IGNORECASE)
_USER_PLACEHOLDER = re.compile(r"\{\{user\}\}", re.IGNORECASE)


def to_book_card(card: CharacterCard) -> Dict[str, Any]:
    """
    Maps a character card onto an interactive book record.

    ``name`` becomes ``title``, ``creator`` becomes ``author``,
    ``first_mes`` becomes ``first_page``, and ``description``
    doubles as the ``summary``. Tags, when present,
    are also joined into a ``genre`` string.
    """
    data = card.data
    book = {
        "title": data.name,
        "description": data.description,
        "author": data.creator or "Unknown Author",
        "scenario": data.scenario,
        "first_page": data.first_mes,
        "summary": data.description,
    }
    if data.tags:
        book["tags"] = list(data.tags)
        book["genre"] = ", ".join(data.tags)
    if data.creator_notes:
        book["creator_notes"] = data.creator_notes
    return {"spec": BOOK_SPEC, "spec_version": "1.0", "data": book}


def build_chat_prompt(
    card: CharacterCard, user_name: str = "User"
) -> List[Dict[str, str]]:
    """
    Builds the messages that open a chat with the card's character.

    ``{{char}}`` and ``{{user}}`` placeholders, in any letter case,
    are replaced with the character's name and `user_name`.

    Returns:
        A list of ``{"role": ..., "content": ...}`` messages:
        the role-play instructions, description, personality, scenario
        and example dialogue as system messages, followed by the
        character's first message as an assistant message
    """
    data = card.data
    char_name = data.name

    def fill(text: str) -> str:
        text = _CHAR_PLACEHOLDER.sub(lambda _: char_name, text)
        return _USER_PLACEHOLDER.sub(lambda _: user_name, text)

    return [
        {
            "role": "system",
            "content": (
                f"You play a role as {char_name}.\n"
                f"Write {char_name}'s next reply in a fictional"
                f" conversation between you and {user_name}."
            ),
        },
        {
            "role": "system",
            "content": f"Description:\n{fill(data.description)}",
        },
        {
            "role": "system",
            "content": f"{char_name}'s personality:\n{fill(data.personality)}",
        },
        {"role": "system", "content": f"Scenario:\n{fill(data.scenario)}"},
        {
            "role": "system",
            "content": (
                f"{char_name}'s message example:\n{fill(data.mes_example)}"
            ),
        },
        {"role": "system", "content": "[Start a new Chat]"},
        {"role": "assistant", "content": fill(data.first_mes)},
    ]


def create_character_card(
    name: str,
    description: str,
    personality: str,
    scenario: str,
    first_mes: str,
    mes_example: str,
    creator: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """Builds a new V3 card from manually entered fields."""
    return {
        "spec": SPEC_V3,
        "spec_version": "3.0",
        "data": {
            "name": name,
            "description": description,
            "personality": personality,
            "scenario": scenario,
            "first_mes": first_mes,
            "mes_example": mes_example,
            "character_version": "1.0",
            "creator": creator or "User",
            "creator_notes": "",
            "system_prompt": "",
            "post_history_instructions": "",
            "alternate_greetings": [],
            "tags": list(tags) if tags else [],
            "talkativeness": 0.5,
        },
    }
