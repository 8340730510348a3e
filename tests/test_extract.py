import asyncio
import base64
import io
import json
import logging
import struct
import time

import pytest

import charapng
from charapng import (
    CharacterCardV2,
    CharacterCardV3,
    ExtractOptions,
    extract_card,
)


def test_v3_card(png, card_v3, encode):
    card = extract_card(png.text("ccv3", encode(card_v3)).build())
    assert isinstance(card, CharacterCardV3)
    assert card.to_dict() == card_v3


def test_v2_card(png, card_v2, encode):
    card = extract_card(png.text("chara", encode(card_v2)).build())
    assert isinstance(card, CharacterCardV2)
    assert card.data.name == "Alice"
    assert card.to_dict() == card_v2


def test_alice_card(png):
    text = base64.b64encode(
        b'{"spec":"chara_card_v2","spec_version":"2.0","data":{"name":"Alice",'
        b'"description":"d","personality":"p","scenario":"s",'
        b'"first_mes":"hi","mes_example":"ex"}}'
    ).decode("ascii")
    card = extract_card(png.text("chara", text).build())
    assert card.spec == "chara_card_v2"
    assert card.data.name == "Alice"


def test_v3_takes_precedence(png, card_v2, card_v3, encode):
    data = (
        png.text("chara", encode(card_v2))
        .text("ccv3", encode(card_v3))
        .build()
    )
    assert extract_card(data).to_dict() == card_v3


def test_v2_first_when_configured(png, card_v2, card_v3, encode):
    data = (
        png.text("ccv3", encode(card_v3))
        .text("chara", encode(card_v2))
        .build()
    )
    options = ExtractOptions(keywords=("chara", "ccv3"))
    assert extract_card(data, options).to_dict() == card_v2


def test_compressed_text_chunk(png, card_v3, encode):
    card = extract_card(png.ztxt("ccv3", encode(card_v3)).build())
    assert card.to_dict() == card_v3


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x89PNG\r\n",
        b"\x89PNG\r\n\x1a\n"[::-1] + b"\0" * 64,
    ],
)
def test_not_a_png(data):
    assert extract_card(data) is None


def test_card_json_in_a_non_png_is_ignored(card_v2):
    assert extract_card(b"GIF89a" + json.dumps(card_v2).encode()) is None


def test_invalid_text_card_falls_through_to_exif(png, card_v2, encode):
    broken = json.loads(json.dumps(card_v2))
    del broken["data"]["mes_example"]
    alice = json.loads(json.dumps(card_v2))
    alice["data"]["name"] = "Alice from EXIF"
    exif = b"MM\0*\0\0\0\x08\0\0Chara\0" + encode(alice).encode() + b"\0"

    assert extract_card(png.text("chara", encode(broken)).build()) is None
    data = png.exif(exif).build()
    assert extract_card(data).data.name == "Alice from EXIF"


def test_exif_marker(png, card_v2, encode):
    payload = encode(card_v2).encode("ascii")
    assert len(payload) >= 200
    data = png.exif(b"II*\0\x08\0\0\0\0\0Chara\0" + payload).build()
    assert extract_card(data).to_dict() == card_v2


def test_exif_can_be_disabled(png, card_v2, encode):
    data = png.exif(b"Chara\0" + encode(card_v2).encode()).build()
    assert extract_card(data, ExtractOptions(use_exif=False)) is None


def test_garbage_text_chunk(png):
    data = png.text("chara", "%%% definitely not base64 %%%").build()
    assert extract_card(data) is None


def test_plain_json_found_by_pattern_search(png, card_v3):
    data = png.chunk(b"caRd", json.dumps(card_v3).encode()).build()
    assert extract_card(data).to_dict() == card_v3
    no_search = ExtractOptions(use_heuristics=False)
    assert extract_card(data, no_search) is None


def test_truncated_file_keeps_earlier_chunks(png, card_v2, encode):
    data = png.text("chara", encode(card_v2)).build()
    assert extract_card(data[:-20]).to_dict() == card_v2


def test_oversized_chunk_keeps_earlier_chunks(png, card_v2, encode):
    data = png.text("chara", encode(card_v2)).build(end=False)
    data += struct.pack(">I4s", 0x7FFFFFFF, b"IDAT") + b"\0" * 32
    assert extract_card(data).to_dict() == card_v2


def test_crc_verification_is_optional(png, card_v2, encode):
    payload = b"chara\0" + encode(card_v2).encode()
    data = png.chunk(b"tEXt", payload, crc=0).build()
    assert extract_card(data).to_dict() == card_v2
    assert extract_card(data, ExtractOptions(verify_crc=True)) is None


def test_idempotent(png, card_v3, encode):
    data = png.text("ccv3", encode(card_v3)).build()
    assert extract_card(data) == extract_card(data)


def test_file_arguments(tmp_path, png, card_v2, encode):
    data = png.text("chara", encode(card_v2)).build()
    path = tmp_path / "avatar.png"
    path.write_bytes(data)

    for file in (
        data,
        bytearray(data),
        memoryview(data),
        str(path),
        path,
        io.BytesIO(data),
    ):
        assert extract_card(file).to_dict() == card_v2

    with open(path, "rb") as f:
        assert extract_card(f).to_dict() == card_v2


def test_missing_file(tmp_path):
    assert extract_card(tmp_path / "missing.png") is None


@pytest.mark.parametrize("file", [None, 42, io.StringIO("text")])
def test_unsupported_argument(file):
    with pytest.raises(TypeError):
        extract_card(file)


def test_async(png, card_v3, encode):
    data = png.text("ccv3", encode(card_v3)).build()
    card = asyncio.run(charapng.extract_card_async(data))
    assert card.to_dict() == card_v3


def test_logs_the_winning_strategy(caplog, png, card_v2, encode):
    data = png.text("chara", encode(card_v2)).build()
    with caplog.at_level(logging.INFO, logger="charapng"):
        extract_card(data)
    assert "via text" in caplog.text


def test_logs_structural_problems(caplog, png):
    data = png.build()[:-6]
    with caplog.at_level(logging.WARNING, logger="charapng"):
        assert extract_card(data) is None
    assert "continuing with 2 chunk(s)" in caplog.text


def test_inspect(png, card_v2, encode):
    data = (
        png.text("chara", encode(card_v2))
        .text("ccv3", "not base64!")
        .text("Software", "paint")
        .build()
    )
    report = charapng.inspect(data)
    assert report["valid_signature"] is True
    assert report["size"] == len(data)
    assert report["error"] is None
    assert [c["type"] for c in report["chunks"]] == [
        "IHDR",
        "tEXt",
        "tEXt",
        "tEXt",
        "IDAT",
        "IEND",
    ]
    chara, ccv3, software = report["text_chunks"]
    assert chara["is_card"] is True
    assert ccv3["is_card"] is False and "base64" in ccv3["error"]
    assert software == {"keyword": "Software", "length": 5, "is_card": False}
    assert report["exif_chunks"] == 0
    assert report["strategy"] == "text"
    json.dumps(report)


def test_inspect_problem_files(tmp_path, png):
    assert charapng.inspect(b"nope")["error"] is not None
    assert charapng.inspect(tmp_path / "missing.png")["error"] is not None
    report = charapng.inspect(png.build()[:-6])
    assert report["strategy"] is None
    assert "ends inside a chunk header" in report["error"]
    assert [c["type"] for c in report["chunks"]] == ["IHDR", "IDAT"]


def test_card_too_deep_to_copy_is_discarded(png, card_v2, encode):
    alice = json.loads(json.dumps(card_v2))
    card_v2["data"]["extensions"] = "nested"
    text = json.dumps(card_v2).replace(
        '"nested"', '{"k":' * 900 + "{}" + "}" * 900
    )
    deep = base64.b64encode(text.encode()).decode("ascii")
    assert extract_card(png.text("chara", deep).build()) is None

    exif = b"Chara\0" + encode(alice).encode() + b"\0"
    data = png.exif(exif).build()
    assert extract_card(data).to_dict() == alice


def test_unclosed_spec_objects_are_searched_quickly(png):
    body = '{"spec":"chara_card_v2",' * 40_000
    data = png.text("Comment", body).build()
    started = time.perf_counter()
    assert extract_card(data) is None
    assert time.perf_counter() - started < 2.0
