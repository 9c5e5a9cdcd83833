"""Fixed-width integer encodings required at the serialization boundary."""

from __future__ import annotations

import struct

_SIGNED_LONG = struct.Struct("<q")


def pack_signed_long(value: int) -> bytes:
    """Encode ``value`` as an 8-byte little-endian signed integer."""

    return _SIGNED_LONG.pack(value)


def unpack_signed_long(data: bytes) -> int:
    return _SIGNED_LONG.unpack(data)[0]
