"""
charapng._png
=============

Walk the chunk stream of an in-memory PNG.

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
import binascii
import contextlib
import struct
from typing import Iterator, List, NamedTuple, Union

from ._errors import InvalidPNGError, NotAPNGError, TruncatedPNGError

__all__ = [
    "PNG_SIGNATURE",
    "MAX_CHUNK_LENGTH",
    "RawChunk",
    "has_png_signature",
    "iter_chunks",
    "read_chunks",
]

# PNG Structure
# See http://www.libpng.org/pub/png/spec/1.2/PNG-Structure.html

# A PNG always starts with an 8-byte signature
PNG_SIGNATURE = bytes((137, 80, 78, 71, 13, 10, 26, 10))
_PNG_SIGNATURE_LEN = len(PNG_SIGNATURE)

# The rest of a PNG is a series of chunks
# A PNG chunk consists of:
# - 4 byte data length (unsigned, big-endian)
# - 4 byte type code
# - Variable length data according to the first header field, and then
# - 4 byte CRC (unsigned, big-endian)
_PNG_CHUNK_HEADER_FORMAT = struct.Struct(">I4s")
_PNG_CHUNK_HEADER_LEN = _PNG_CHUNK_HEADER_FORMAT.size
_PNG_CHUNK_FOOTER_FORMAT = struct.Struct(">I")
_PNG_CHUNK_FOOTER_LEN = _PNG_CHUNK_FOOTER_FORMAT.size

# No metadata chunk seen in the wild comes close to this;
# anything larger is treated as a corrupt or hostile length field
MAX_CHUNK_LENGTH = 1_000_000


class RawChunk(NamedTuple):
    """A single chunk, in the order it appears in the file."""

    type: bytes
    length: int
    payload: bytes
    crc: int

    @property
    def name(self) -> str:
        return self.type.decode("latin-1")


def has_png_signature(data: bytes) -> bool:
    return data[:_PNG_SIGNATURE_LEN] == PNG_SIGNATURE


def read_chunks(
    data: bytes,
    *,
    max_chunk_length: int = MAX_CHUNK_LENGTH,
    verify_crc: bool = False,
) -> List[RawChunk]:
    """
    Splits a PNG into its chunks.

    Notes:
        CRCs are not verified by default: metadata editors often
        leave stale CRCs behind on chunks that still decode fine.

        Reading stops after the ``IEND`` chunk; trailing bytes are ignored.

    Args:
        data: The complete PNG file contents
        max_chunk_length: Largest chunk length accepted
        verify_crc: Whether to compare each chunk's CRC
            against its contents

    Returns:
        A list of every chunk read, in file order

    Raises:
        NotAPNGError: If `data` does not start with the PNG signature
        TruncatedPNGError: If a chunk runs past the end of `data`
            or declares a length above `max_chunk_length`
        InvalidPNGError: If `verify_crc` is set and a CRC does not match
    """
    return list(
        iter_chunks(
            data, max_chunk_length=max_chunk_length, verify_crc=verify_crc
        )
    )


def iter_chunks(
    data: bytes,
    *,
    max_chunk_length: int = MAX_CHUNK_LENGTH,
    verify_crc: bool = False,
) -> Iterator[RawChunk]:
    """
    Lazy version of `read_chunks`.

    Chunks that were read before a structural error
    have already been yielded when the error is raised,
    so callers can keep a partial result.
    """
    if len(data) < _PNG_SIGNATURE_LEN:
        raise NotAPNGError(
            "not a valid PNG file: too short, missing PNG signature"
        )
    if not has_png_signature(data):
        raise NotAPNGError("not a valid PNG file: incorrect PNG signature")

    with _ByteCursor(data, _PNG_SIGNATURE_LEN) as cursor:
        while cursor.remaining > 0:
            offset = cursor.pos
            try:
                length, chunk_type = _PNG_CHUNK_HEADER_FORMAT.unpack_from(
                    cursor.read(_PNG_CHUNK_HEADER_LEN)
                )
            except EOFError as e:
                raise TruncatedPNGError(
                    "not a valid PNG file: ends inside a chunk header",
                    offset,
                ) from e

            if length > max_chunk_length:
                raise TruncatedPNGError(
                    f"chunk {chunk_type!r} at offset {offset} declares"
                    f" {length} bytes, above the limit of {max_chunk_length}",
                    offset,
                )

            try:
                payload = bytes(cursor.read(length))
                crc = _PNG_CHUNK_FOOTER_FORMAT.unpack_from(
                    cursor.read(_PNG_CHUNK_FOOTER_LEN)
                )[0]
            except EOFError as e:
                raise TruncatedPNGError(
                    f"not a valid PNG file: chunk {chunk_type!r}"
                    f" at offset {offset} ends prematurely",
                    offset,
                ) from e

            if verify_crc:
                # Chunk CRC checksums include the chunk type field
                expected = binascii.crc32(payload, binascii.crc32(chunk_type))
                if expected != crc:
                    raise InvalidPNGError(
                        f"not a valid PNG file: invalid CRC on chunk"
                        f" {chunk_type!r} at offset {offset}"
                    )

            yield RawChunk(chunk_type, length, payload, crc)

            if chunk_type == b"IEND":
                break


class _ByteCursor(contextlib.AbstractContextManager):
    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.pos = pos
        self.mv = memoryview(data)

    @property
    def remaining(self) -> int:
        return len(self.mv) - self.pos

    def read(self, num_bytes: int) -> Union[bytes, memoryview]:
        if num_bytes > self.remaining:
            raise EOFError(
                f"requested {num_bytes} byte(s),"
                f" but only {self.remaining} byte(s) were available"
            )
        old_pos = self.pos
        self.pos += num_bytes
        return self.mv[old_pos : self.pos]

    def close(self) -> None:
        self.mv.release()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
