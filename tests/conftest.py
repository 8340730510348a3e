"""Pytest fixtures: character cards and synthesized PNG files."""

import base64
import binascii
import json
import struct
import zlib

import pytest

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def chunk(chunk_type: bytes, payload: bytes, crc=None) -> bytes:
    if crc is None:
        crc = binascii.crc32(payload, binascii.crc32(chunk_type))
    return (
        struct.pack(">I4s", len(payload), chunk_type)
        + payload
        + struct.pack(">I", crc)
    )


def encode_card(card) -> str:
    return base64.b64encode(json.dumps(card).encode("utf-8")).decode("ascii")


class PNGBuilder:
    """Assembles a minimal 1x1 PNG around the metadata chunks under test."""

    def __init__(self):
        self._chunks = []

    def chunk(self, chunk_type: bytes, payload: bytes, crc=None):
        self._chunks.append(chunk(chunk_type, payload, crc))
        return self

    def text(self, keyword: str, text: str):
        return self.chunk(
            b"tEXt", keyword.encode("latin-1") + b"\0" + text.encode("utf-8")
        )

    def ztxt(self, keyword: str, text: str):
        return self.chunk(
            b"zTXt",
            keyword.encode("latin-1")
            + b"\0\0"
            + zlib.compress(text.encode("utf-8")),
        )

    def itxt(self, keyword: str, text: str, compressed=False):
        body = text.encode("utf-8")
        if compressed:
            body = zlib.compress(body)
        return self.chunk(
            b"iTXt",
            keyword.encode("latin-1")
            + b"\0"
            + bytes((1 if compressed else 0, 0))
            + b"en\0"
            + keyword.encode("utf-8")
            + b"\0"
            + body,
        )

    def exif(self, payload: bytes):
        return self.chunk(b"eXIf", payload)

    def build(self, end=True) -> bytes:
        ihdr = struct.pack(">IIBBBBB", 1, 1, 8, 6, 0, 0, 0)
        idat = zlib.compress(b"\0\0\0\0\0")
        data = PNG_SIGNATURE + chunk(b"IHDR", ihdr)
        data += b"".join(self._chunks)
        data += chunk(b"IDAT", idat)
        if end:
            data += chunk(b"IEND", b"")
        return data


def tiff_block(entries, order="<", exif_header=False) -> bytes:
    """
    Builds a TIFF structure with one IFD.

    `entries` is a list of ``(tag, type, value_bytes)``;
    values longer than 4 bytes are stored after the IFD.
    """
    mark = b"II" if order == "<" else b"MM"
    header = mark + struct.pack(order + "HI", 42, 8)
    ifd_len = 2 + 12 * len(entries) + 4
    data_offset = 8 + ifd_len
    ifd = struct.pack(order + "H", len(entries))
    extra = b""
    for tag, field_type, value in entries:
        count = len(value)
        if count <= 4:
            ifd += struct.pack(order + "HHI", tag, field_type, count)
            ifd += value.ljust(4, b"\0")
        else:
            offset = data_offset + len(extra)
            ifd += struct.pack(order + "HHII", tag, field_type, count, offset)
            extra += value
    ifd += struct.pack(order + "I", 0)
    block = header + ifd + extra
    if exif_header:
        block = b"Exif\0\0" + block
    return block


@pytest.fixture
def card_v2():
    return {
        "spec": "chara_card_v2",
        "spec_version": "2.0",
        "data": {
            "name": "Alice",
            "description": "d",
            "personality": "p",
            "scenario": "s",
            "first_mes": "hi",
            "mes_example": "ex",
        },
    }


@pytest.fixture
def card_v3():
    return {
        "spec": "chara_card_v3",
        "spec_version": "3.0",
        "data": {
            "name": "Bob",
            "description": "A lighthouse keeper on a {{user}}-less island.",
            "personality": "Quiet, patient",
            "scenario": "{{user}} washes ashore near {{char}}'s lighthouse.",
            "first_mes": "*{{Char}} lowers the lantern.* Who goes there?",
            "mes_example": "<START>\n{{char}}: The tide waits for no one.",
            "creator": "eta",
            "character_version": "1.2",
            "tags": ["sea", "mystery"],
            "creator_notes": "Works best slow-paced.",
            "system_prompt": "",
            "alternate_greetings": ["Ahoy."],
            "talkativeness": 0.4,
            "extensions": {"depth_prompt": {"depth": 4, "prompt": "x"}},
            "character_book": {"entries": [{"keys": ["tide"]}]},
        },
        "name": "Bob",
    }


@pytest.fixture
def png():
    return PNGBuilder()


@pytest.fixture
def encode():
    return encode_card


@pytest.fixture
def make_chunk():
    return chunk


@pytest.fixture
def make_tiff():
    return tiff_block
