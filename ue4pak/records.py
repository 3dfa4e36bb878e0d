from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .binio import ENC_UTF8, BufferReader, pack_string
from .constants import COMPR_NONE, SHA1_SIZE
from .errors import TruncatedError


# Fixed record prefix shared by every version:
#  - offset u64
#  - size u64 (stored bytes, compressed if compressed)
#  - uncompressed_size u64
#  - compression_method u32
_REC_HEAD_STRUCT = struct.Struct("<QQQI")
_BLOCK_STRUCT = struct.Struct("<QQ")
_V3_TAIL_STRUCT = struct.Struct("<BI")  # encrypted u8, compression_block_size u32


@dataclass(frozen=True)
class CompressionBlock:
    # Byte range of one compressed chunk, relative to the record's payload start
    start_offset: int
    end_offset: int

    @property
    def size(self) -> int:
        return self.end_offset - self.start_offset


@dataclass(frozen=True)
class Record:
    filename: str
    offset: int
    size: int
    uncompressed_size: int
    compression_method: int = COMPR_NONE
    timestamp: Optional[int] = None  # version 1 only
    sha1: bytes = b"\x00" * SHA1_SIZE
    compression_blocks: Optional[Tuple[CompressionBlock, ...]] = None
    encrypted: bool = False
    compression_block_size: Optional[int] = None

    @property
    def is_compressed(self) -> bool:
        return self.compression_method != COMPR_NONE

    @property
    def data_end(self) -> int:
        return self.offset + self.size


def _read_head(buf: BufferReader) -> Tuple[int, int, int, int]:
    return _REC_HEAD_STRUCT.unpack(buf.read(_REC_HEAD_STRUCT.size))


def read_record_v1(buf: BufferReader, filename: str) -> Record:
    offset, size, uncompressed_size, method = _read_head(buf)
    timestamp = buf.u64()
    sha1 = bytes(buf.read(SHA1_SIZE))
    return Record(filename, offset, size, uncompressed_size, method, timestamp, sha1)


def read_record_v2(buf: BufferReader, filename: str) -> Record:
    offset, size, uncompressed_size, method = _read_head(buf)
    sha1 = bytes(buf.read(SHA1_SIZE))
    return Record(filename, offset, size, uncompressed_size, method, None, sha1)


def read_record_v3(buf: BufferReader, filename: str) -> Record:
    offset, size, uncompressed_size, method = _read_head(buf)
    sha1 = bytes(buf.read(SHA1_SIZE))
    if method == COMPR_NONE:
        return Record(filename, offset, size, uncompressed_size, method, None, sha1)
    block_count = buf.u32()
    # Bound the count by what is left before allocating anything
    if block_count * _BLOCK_STRUCT.size > buf.remaining:
        raise TruncatedError(f"{filename}: {block_count} compression blocks do not fit in the index")
    blocks = tuple(
        CompressionBlock(*_BLOCK_STRUCT.unpack(buf.read(_BLOCK_STRUCT.size))) for _ in range(block_count)
    )
    encrypted, block_size = _V3_TAIL_STRUCT.unpack(buf.read(_V3_TAIL_STRUCT.size))
    return Record(
        filename,
        offset,
        size,
        uncompressed_size,
        method,
        None,
        sha1,
        compression_blocks=blocks,
        encrypted=encrypted != 0,
        compression_block_size=block_size,
    )


def _pack_head(record: Record) -> bytes:
    if len(record.sha1) != SHA1_SIZE:
        raise ValueError(f"{record.filename}: sha1 must be {SHA1_SIZE} bytes")
    return _REC_HEAD_STRUCT.pack(record.offset, record.size, record.uncompressed_size, record.compression_method)


def _reject_blocks(record: Record, version: int) -> None:
    if record.compression_blocks is not None:
        raise ValueError(f"{record.filename}: version {version} records cannot store compression blocks")


def pack_record_v1(record: Record) -> bytes:
    _reject_blocks(record, 1)
    if record.timestamp is None:
        raise ValueError(f"{record.filename}: version 1 records require a timestamp")
    return _pack_head(record) + struct.pack("<Q", record.timestamp) + record.sha1


def pack_record_v2(record: Record) -> bytes:
    _reject_blocks(record, 2)
    return _pack_head(record) + record.sha1


def pack_record_v3(record: Record) -> bytes:
    out = bytearray(_pack_head(record))
    out += record.sha1
    if record.compression_method == COMPR_NONE:
        return bytes(out)
    blocks = record.compression_blocks or ()
    out += struct.pack("<I", len(blocks))
    for block in blocks:
        out += _BLOCK_STRUCT.pack(block.start_offset, block.end_offset)
    out += _V3_TAIL_STRUCT.pack(int(record.encrypted), record.compression_block_size or 0)
    return bytes(out)


RECORD_READERS: Dict[int, Callable[[BufferReader, str], Record]] = {
    1: read_record_v1,
    2: read_record_v2,
    3: read_record_v3,
}

RECORD_PACKERS: Dict[int, Callable[[Record], bytes]] = {
    1: pack_record_v1,
    2: pack_record_v2,
    3: pack_record_v3,
}


def read_index_entry(buf: BufferReader, version: int, encoding: str = ENC_UTF8) -> Record:
    """Read one ``[filename][record]`` pair from the index buffer."""
    filename = buf.string(encoding)
    return RECORD_READERS[version](buf, filename)


def pack_index_entry(record: Record, version: int, encoding: str = ENC_UTF8) -> bytes:
    return pack_string(record.filename, encoding) + RECORD_PACKERS[version](record)
