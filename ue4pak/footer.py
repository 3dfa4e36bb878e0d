from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import BinaryIO

from .binio import read_exact
from .constants import FOOTER_SIZE, PAK_MAGIC
from .errors import CorruptIndexError, TruncatedError


_FOOTER_STRUCT = struct.Struct("<IIQQ20s")


@dataclass(frozen=True)
class Footer:
    magic: int
    version: int
    index_offset: int
    index_size: int
    index_sha1: bytes
    # Absolute file offset where the footer starts
    offset: int


def pack_footer(version: int, index_offset: int, index_size: int, index_sha1: bytes) -> bytes:
    return _FOOTER_STRUCT.pack(PAK_MAGIC, version, index_offset, index_size, index_sha1)


def read_footer(f: BinaryIO) -> Footer:
    size = f.seek(0, os.SEEK_END)
    if size < FOOTER_SIZE:
        raise CorruptIndexError(f"file too small for a pak footer: {size} bytes")
    offset = size - FOOTER_SIZE
    f.seek(offset)
    try:
        raw = read_exact(f, FOOTER_SIZE)
    except TruncatedError as exc:
        raise CorruptIndexError(str(exc)) from exc
    magic, version, index_offset, index_size, index_sha1 = _FOOTER_STRUCT.unpack(raw)
    return Footer(magic, version, index_offset, index_size, index_sha1, offset)
