"""
charapng.card
=============

The character card acceptance rule and the typed card model.

A decoded JSON value is only trusted as a character card once
`is_character_card` accepts it; `CharacterCard.from_dict` is the one
place a typed card is built, and it refuses anything the rule rejects.

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
import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

__all__ = [
    "SPEC_V2",
    "SPEC_V3",
    "REQUIRED_FIELDS",
    "is_character_card",
    "CharacterData",
    "CharacterCard",
    "CharacterCardV2",
    "CharacterCardV3",
]

SPEC_V2 = "chara_card_v2"
SPEC_V3 = "chara_card_v3"

REQUIRED_FIELDS: Tuple[str, ...] = (
    "name",
    "description",
    "personality",
    "scenario",
    "first_mes",
    "mes_example",
)


def is_character_card(value: Any) -> bool:
    """
    Checks whether a decoded JSON value is a character card.

    A value qualifies if it is an object whose ``spec`` is
    ``chara_card_v2`` or ``chara_card_v3``, whose ``data`` is an object,
    and whose ``data`` holds every one of `REQUIRED_FIELDS`
    as a non-empty string. Nothing beyond that is checked.

    This never raises; anything that cannot be inspected is rejected.

    Examples:
        Checking a card fetched from somewhere other than a PNG::

            import json
            import charapng

            value = json.loads(response_body)
            if charapng.is_character_card(value):
                card = charapng.CharacterCard.from_dict(value)
    """
    try:
        if not isinstance(value, dict):
            return False
        if value.get("spec") not in (SPEC_V2, SPEC_V3):
            return False
        data = value.get("data")
        if not isinstance(data, dict):
            return False
        return all(
            isinstance(data.get(name), str) and len(data[name]) > 0
            for name in REQUIRED_FIELDS
        )
    except Exception:
        return False


def _optional(data: dict, name: str, kind, default=None):
    value = data.get(name, default)
    if isinstance(value, bool) and kind is not bool:
        return default
    return value if isinstance(value, kind) else default


def _string_list(data: dict, name: str) -> List[str]:
    value = data.get(name)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass(frozen=True)
class CharacterData:
    name: str
    description: str
    personality: str
    scenario: str
    first_mes: str
    mes_example: str
    creator: Optional[str] = None
    character_version: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    creator_notes: Optional[str] = None
    system_prompt: Optional[str] = None
    post_history_instructions: Optional[str] = None
    alternate_greetings: List[str] = field(default_factory=list)
    talkativeness: Optional[float] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "CharacterData":
        # Optional fields of the wrong type are dropped rather than rejected
        talkativeness = data.get("talkativeness")
        if isinstance(talkativeness, str):
            # Some producers write this one as a string
            try:
                talkativeness = float(talkativeness)
            except ValueError:
                talkativeness = None
        elif isinstance(talkativeness, bool) or not isinstance(
            talkativeness, (int, float)
        ):
            talkativeness = None
        return cls(
            **{name: data[name] for name in REQUIRED_FIELDS},
            creator=_optional(data, "creator", str),
            character_version=_optional(data, "character_version", str),
            tags=_string_list(data, "tags"),
            creator_notes=_optional(data, "creator_notes", str),
            system_prompt=_optional(data, "system_prompt", str),
            post_history_instructions=_optional(
                data, "post_history_instructions", str
            ),
            alternate_greetings=_string_list(data, "alternate_greetings"),
            talkativeness=talkativeness,
            extensions=copy.deepcopy(_optional(data, "extensions", dict, {})),
        )


@dataclass(frozen=True)
class CharacterCard:
    """
    A validated character card.

    Instances are always a `CharacterCardV2` or a `CharacterCardV3`;
    use `isinstance` or `version` to tell them apart.
    The JSON object the card was built from is kept as-is,
    including any fields this model does not name,
    and `to_dict` returns a copy of it.
    """

    SPEC: ClassVar[str] = ""
    DEFAULT_SPEC_VERSION: ClassVar[str] = ""
    VERSION: ClassVar[int] = 0

    spec_version: str
    data: CharacterData
    raw: Dict[str, Any] = field(repr=False)

    @property
    def spec(self) -> str:
        return self.SPEC

    @property
    def version(self) -> int:
        return self.VERSION

    @property
    def name(self) -> str:
        return self.data.name

    @staticmethod
    def from_dict(value: Any) -> "CharacterCard":
        """
        Builds a typed card from a decoded JSON value.

        Raises:
            ValueError: If `is_character_card` rejects `value`
        """
        if not is_character_card(value):
            raise ValueError("value is not a valid character card")
        card_type = _CARD_TYPES[value["spec"]]
        spec_version = value.get("spec_version")
        if not isinstance(spec_version, str):
            spec_version = card_type.DEFAULT_SPEC_VERSION
        raw = copy.deepcopy(value)
        return card_type(
            spec_version=spec_version,
            data=CharacterData.from_dict(raw["data"]),
            raw=raw,
        )

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class CharacterCardV2(CharacterCard):
    SPEC: ClassVar[str] = SPEC_V2
    DEFAULT_SPEC_VERSION: ClassVar[str] = "2.0"
    VERSION: ClassVar[int] = 2


@dataclass(frozen=True)
class CharacterCardV3(CharacterCard):
    SPEC: ClassVar[str] = SPEC_V3
    DEFAULT_SPEC_VERSION: ClassVar[str] = "3.0"
    VERSION: ClassVar[int] = 3


_CARD_TYPES: Dict[str, Type[CharacterCard]] = {
    SPEC_V2: CharacterCardV2,
    SPEC_V3: CharacterCardV3,
}
