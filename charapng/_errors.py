"""
charapng._errors
================

Exceptions raised by the chunk reader and the payload decoders.

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

__all__ = [
    "InvalidPNGError",
    "NotAPNGError",
    "TruncatedPNGError",
    "CardDecodeError",
]


class InvalidPNGError(ValueError):
    """
    Error raised when a PNG chunk stream cannot be parsed.

    This may be due to data corruption, incomplete data,
    or passing a file that is not a PNG.
    """

    pass


class NotAPNGError(InvalidPNGError):
    """
    Error raised when the data is too short to hold a PNG signature,
    or its first 8 bytes are not the PNG signature.
    """

    pass


class TruncatedPNGError(InvalidPNGError):
    """
    Error raised when a chunk declares more data than the buffer holds,
    or a length above the configured safety bound.

    Attributes:
        offset: Byte offset of the chunk header that could not be read
    """

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(message)
        self.offset = offset


class CardDecodeError(ValueError):
    """
    Error raised when a candidate payload cannot be decoded.

    This covers payloads that are not base64, not UTF-8,
    or not JSON. The extraction pipeline catches it per candidate
    and moves on to the next one.
    """

    pass
