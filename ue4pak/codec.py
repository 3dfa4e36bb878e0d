from __future__ import annotations

import zlib
from typing import Optional

from .constants import (
    BUFFER_SIZE,
    COMPR_LEVEL_BEST,
    COMPR_LEVEL_DEFAULT,
    COMPR_LEVEL_FAST,
    COMPR_NONE,
    COMPR_ZLIB,
    compression_method_name,
)
from .errors import CorruptDataError, UnsupportedCompressionMethodError


def unsupported_method(method: int, context: Optional[str] = None) -> UnsupportedCompressionMethodError:
    msg = f"unsupported compression method: {compression_method_name(method)} ({method})"
    return UnsupportedCompressionMethodError(f"{context}: {msg}" if context else msg)


class Codec:
    def __init__(self, method: int, level: Optional[int] = None):
        if method not in (COMPR_NONE, COMPR_ZLIB):
            raise unsupported_method(method)
        self.method = method
        self.level = level

    def compress(self, data: bytes) -> bytes:
        if self.method == COMPR_NONE:
            return bytes(data)
        return zlib.compress(data, self.level if self.level is not None else COMPR_LEVEL_DEFAULT)

    def decompress(self, data: bytes, limit: int) -> bytes:
        """Inflate one block, producing at most ``limit`` bytes.

        A block that would inflate past ``limit``, is not a complete zlib
        stream, or carries trailing garbage is reported as CorruptDataError.
        """
        if self.method == COMPR_NONE:
            if len(data) > limit:
                raise CorruptDataError(f"block of {len(data)} bytes exceeds remaining size {limit}")
            return bytes(data)
        d = zlib.decompressobj()
        out = bytearray()
        tail = data
        try:
            while True:
                # max_length=0 means unlimited; each step asks for at most one byte past the limit
                out += d.decompress(tail, min(limit - len(out) + 1, BUFFER_SIZE))
                if len(out) > limit:
                    raise CorruptDataError(f"block inflates past the expected size of {limit} bytes")
                tail = d.unconsumed_tail
                if not tail:
                    break
            out += d.flush()
        except zlib.error as exc:
            raise CorruptDataError(f"zlib error: {exc}") from exc
        if len(out) > limit:
            raise CorruptDataError(f"block inflates past the expected size of {limit} bytes")
        if not d.eof:
            raise CorruptDataError("truncated zlib block")
        if d.unused_data:
            raise CorruptDataError(f"{len(d.unused_data)} trailing bytes after zlib block")
        return bytes(out)


def parse_compression_method(value: str) -> int:
    name = value.strip().lower()
    if name == "none":
        return COMPR_NONE
    if name == "zlib":
        return COMPR_ZLIB
    raise ValueError(f"compression method not supported: {value!r}")


def parse_compression_level(value: str) -> int:
    name = value.strip().lower()
    if name == "best":
        return COMPR_LEVEL_BEST
    if name == "fast":
        return COMPR_LEVEL_FAST
    if name == "default":
        return COMPR_LEVEL_DEFAULT
    try:
        level = int(name)
    except ValueError:
        level = 0
    if not 1 <= level <= 9:
        raise ValueError(f"illegal compression level: {value!r}")
    return level
