from charapng import CharacterCard, is_character_card
from charapng.convert import (
    BOOK_SPEC,
    build_chat_prompt,
    create_character_card,
    to_book_card,
)


def test_book_card(card_v3):
    book = to_book_card(CharacterCard.from_dict(card_v3))
    assert book["spec"] == BOOK_SPEC
    assert book["spec_version"] == "1.0"
    data = book["data"]
    assert data["title"] == "Bob"
    assert data["author"] == "eta"
    assert data["description"] == card_v3["data"]["description"]
    assert data["summary"] == data["description"]
    assert data["first_page"] == card_v3["data"]["first_mes"]
    assert data["tags"] == ["sea", "mystery"]
    assert data["genre"] == "sea, mystery"
    assert data["creator_notes"] == "Works best slow-paced."


def test_book_card_without_optional_fields(card_v2):
    data = to_book_card(CharacterCard.from_dict(card_v2))["data"]
    assert data["author"] == "Unknown Author"
    assert "tags" not in data
    assert "genre" not in data
    assert "creator_notes" not in data


def test_chat_prompt(card_v3):
    messages = build_chat_prompt(CharacterCard.from_dict(card_v3), "Ann")
    assert [m["role"] for m in messages] == ["system"] * 6 + ["assistant"]
    assert messages[0]["content"].startswith("You play a role as Bob.")
    assert "between you and Ann" in messages[0]["content"]
    assert messages[3]["content"] == (
        "Scenario:\nAnn washes ashore near Bob's lighthouse."
    )
    assert messages[5]["content"] == "[Start a new Chat]"
    assert messages[6]["content"] == (
        "*Bob lowers the lantern.* Who goes there?"
    )
    assert not any("{{" in m["content"] for m in messages)


def test_chat_prompt_default_user(card_v2):
    card_v2["data"]["first_mes"] = "Hello, {{user}}!"
    messages = build_chat_prompt(CharacterCard.from_dict(card_v2))
    assert messages[-1]["content"] == "Hello, User!"


def test_chat_prompt_with_backslashes_in_names(card_v2):
    card_v2["data"]["name"] = r"A\1ice"
    card_v2["data"]["first_mes"] = "I am {{char}}."
    messages = build_chat_prompt(CharacterCard.from_dict(card_v2))
    assert messages[-1]["content"] == r"I am A\1ice."


def test_created_card_is_valid():
    card = create_character_card(
        "Mia", "desc", "calm", "a cafe", "Hi!", "{{char}}: Hi", tags=("x",)
    )
    assert is_character_card(card)
    assert card["spec"] == "chara_card_v3"
    assert card["data"]["creator"] == "User"
    assert card["data"]["character_version"] == "1.0"
    assert card["data"]["talkativeness"] == 0.5
    assert card["data"]["tags"] == ["x"]
    assert CharacterCard.from_dict(card).name == "Mia"
