"""
charapng._source
================

Turn the supported file arguments into one flat byte buffer.

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
import io
import os
import typing
from typing import BinaryIO, Union

__all__ = ["FileArgument", "load_bytes"]

FileArgument = Union[bytes, bytearray, memoryview, str, os.PathLike, BinaryIO]

# Upper bound on a single read() from a non-seekable stream
_READ_BLOCK_SIZE: int = 256 << 10


def load_bytes(file: FileArgument) -> bytes:
    """
    Reads a whole PNG into memory.

    Args:
        file: A bytes-like object, a filesystem path,
            or a readable binary file-like object.
            File-like objects are read from their current position
            to the end, and are not closed

    Returns:
        The file contents

    Raises:
        TypeError: If `file` is none of the supported types
        OSError: If a path cannot be opened or a stream cannot be read
    """
    if isinstance(file, bytes):
        return file
    elif isinstance(file, (bytearray, memoryview)):
        return bytes(file)
    elif isinstance(file, (str, os.PathLike)):
        with open(file, "rb") as f:
            return f.read()
    elif isinstance(file, io.IOBase):
        return _read_stream(typing.cast(BinaryIO, file))
    else:
        raise TypeError(
            "argument 'file' must be bytes, a path, or a"
            f" readable binary file-like object, not {type(file).__name__}"
        )


def _read_stream(stream: BinaryIO) -> bytes:
    if isinstance(stream, io.TextIOBase):
        raise TypeError("file-like object must be opened in binary mode")
    # Read in bounded blocks so pipes and sockets behave like regular files
    blocks = []
    while True:
        block = stream.read(_READ_BLOCK_SIZE)
        if not block:
            break
        blocks.append(block)
    return b"".join(blocks)
