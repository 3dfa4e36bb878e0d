from __future__ import annotations

import hashlib
import zlib
from typing import BinaryIO, Iterator, List, Optional, Tuple

from .binio import readinto_exact
from .codec import Codec, unsupported_method
from .constants import BUFFER_SIZE, COMPR_NONE, COMPR_ZLIB
from .errors import CorruptDataError, CorruptIndexError, EncryptedRecordError, PakIOError
from .records import CompressionBlock, Record


def scratch_buffer(size: int = BUFFER_SIZE) -> bytearray:
    return bytearray(size)


def _view(buffer: bytearray, size: int) -> memoryview:
    # Oversized blocks get a temporary buffer; the caller's buffer is left as is
    if size > len(buffer):
        return memoryview(bytearray(size))
    return memoryview(buffer)[:size]


# -------- split (write path) --------

def write_stored(out: BinaryIO, src: BinaryIO, size: int, buffer: bytearray) -> bytes:
    """Copy ``size`` bytes from ``src`` to ``out`` verbatim; returns the SHA-1 of the payload."""
    if not buffer:
        buffer = scratch_buffer()
    hasher = hashlib.sha1()
    remaining = size
    while remaining > 0:
        view = _view(buffer, min(remaining, len(buffer)))
        readinto_exact(src, view)
        out.write(view)
        hasher.update(view)
        remaining -= len(view)
    return hasher.digest()


def write_blocks(
    out: BinaryIO,
    src: BinaryIO,
    uncompressed_size: int,
    block_size: int,
    level: int,
    buffer: bytearray,
) -> Tuple[int, bytes, Tuple[CompressionBlock, ...]]:
    """
    Compress ``src`` into consecutive, independently deflated blocks.

    Every block covers ``block_size`` uncompressed bytes except possibly the
    last. Block offsets are relative to the first byte written here and the
    compressed blocks follow each other with no padding, so the returned
    stored size equals the end offset of the last block.

    Returns:
        (stored size, SHA-1 over the compressed bytes as written, blocks)
    """
    if block_size <= 0 and uncompressed_size > 0:
        raise ValueError("compression block size must be positive")
    codec = Codec(COMPR_ZLIB, level)
    hasher = hashlib.sha1()
    blocks: List[CompressionBlock] = []
    start = 0
    remaining = uncompressed_size
    while remaining > 0:
        view = _view(buffer, min(remaining, block_size))
        readinto_exact(src, view)
        data = codec.compress(view)
        out.write(data)
        hasher.update(data)
        end = start + len(data)
        blocks.append(CompressionBlock(start, end))
        start = end
        remaining -= len(view)
    return start, hasher.digest(), tuple(blocks)


# -------- join (read path) --------

def check_block_layout(record: Record) -> None:
    """Raise CorruptIndexError unless the record's sizes and blocks are consistent."""
    if record.compression_method == COMPR_NONE:
        if record.compression_blocks is not None:
            raise CorruptIndexError(f"{record.filename}: uncompressed record carries compression blocks")
        if record.size != record.uncompressed_size:
            raise CorruptIndexError(
                f"{record.filename}: file is not compressed but size ({record.size}) "
                f"differs from uncompressed size ({record.uncompressed_size})"
            )
        return
    if record.compression_blocks is None:
        return
    prev_end = 0
    for i, block in enumerate(record.compression_blocks):
        if block.end_offset <= block.start_offset:
            raise CorruptIndexError(f"{record.filename}: compression block {i} is empty or inverted")
        if block.start_offset < prev_end:
            raise CorruptIndexError(f"{record.filename}: compression block {i} overlaps its predecessor")
        if block.end_offset > record.size:
            raise CorruptIndexError(
                f"{record.filename}: compression block {i} ends at {block.end_offset}, "
                f"past the stored size {record.size}"
            )
        prev_end = block.end_offset


def _iter_stored(f: BinaryIO, record: Record, buffer: bytearray) -> Iterator[bytes]:
    f.seek(record.offset)
    remaining = record.size
    while remaining > 0:
        view = _view(buffer, min(remaining, len(buffer)))
        readinto_exact(f, view)
        yield bytes(view)
        remaining -= len(view)


def _iter_zlib_stream(f: BinaryIO, record: Record, buffer: bytearray) -> Iterator[bytes]:
    # Records without a block table hold the payload as a single zlib stream
    d = zlib.decompressobj()
    f.seek(record.offset)
    remaining_in = record.size
    produced = 0
    limit = record.uncompressed_size
    try:
        while remaining_in > 0 and not d.eof:
            view = _view(buffer, min(remaining_in, len(buffer)))
            readinto_exact(f, view)
            remaining_in -= len(view)
            data = d.decompress(view, min(limit - produced + 1, len(buffer)))
            while True:
                produced += len(data)
                if produced > limit:
                    raise CorruptDataError(f"{record.filename}: data inflates past {limit} bytes")
                if data:
                    yield data
                if not d.unconsumed_tail:
                    break
                data = d.decompress(d.unconsumed_tail, min(limit - produced + 1, len(buffer)))
        data = d.flush()
    except zlib.error as exc:
        raise CorruptDataError(f"{record.filename}: zlib error: {exc}") from exc
    produced += len(data)
    if produced > limit:
        raise CorruptDataError(f"{record.filename}: data inflates past {limit} bytes")
    if data:
        yield data
    if not d.eof:
        raise CorruptDataError(f"{record.filename}: truncated zlib stream")
    if remaining_in or d.unused_data:
        raise CorruptDataError(f"{record.filename}: trailing bytes after zlib stream")


def _iter_blocks(f: BinaryIO, record: Record, buffer: bytearray) -> Iterator[bytes]:
    assert record.compression_blocks is not None
    codec = Codec(record.compression_method)
    remaining = record.uncompressed_size
    # No block inflates past the nominal block size, when the record declares one
    block_size = record.compression_block_size or remaining
    for block in record.compression_blocks:
        f.seek(record.offset + block.start_offset)
        view = _view(buffer, block.size)
        readinto_exact(f, view)
        try:
            data = codec.decompress(view, min(remaining, block_size))
        except CorruptDataError as exc:
            raise CorruptDataError(f"{record.filename}: {exc}") from exc
        remaining -= len(data)
        yield data


def iter_record_data(f: BinaryIO, record: Record, buffer: Optional[bytearray] = None) -> Iterator[bytes]:
    """
    Yield the uncompressed payload of ``record`` in chunks.

    The total yielded length is checked against ``uncompressed_size``; a
    shortfall or excess raises CorruptDataError instead of producing a
    silently truncated or padded file.
    """
    if not buffer:
        buffer = scratch_buffer()
    if record.encrypted:
        raise EncryptedRecordError(f"{record.filename}: encrypted records are not supported")
    check_block_layout(record)
    if record.compression_method == COMPR_NONE:
        chunks = _iter_stored(f, record, buffer)
    elif record.compression_method != COMPR_ZLIB:
        raise unsupported_method(record.compression_method, record.filename)
    elif record.compression_blocks is None:
        chunks = _iter_zlib_stream(f, record, buffer)
    else:
        chunks = _iter_blocks(f, record, buffer)
    produced = 0
    for chunk in chunks:
        produced += len(chunk)
        yield chunk
    if produced != record.uncompressed_size:
        raise CorruptDataError(
            f"{record.filename}: decompressed {produced} bytes, expected {record.uncompressed_size}"
        )


def copy_record_data(
    f: BinaryIO,
    record: Record,
    out: BinaryIO,
    buffer: Optional[bytearray] = None,
    src_path: Optional[str] = None,
    dest_path: Optional[str] = None,
) -> int:
    """
    Stream the uncompressed payload of ``record`` into ``out``.

    Host errors become PakIOError naming ``src_path`` when reading the pak
    failed and ``dest_path`` when writing ``out`` failed.
    """
    written = 0
    chunks = iter_record_data(f, record, buffer)
    while True:
        try:
            chunk = next(chunks)
        except StopIteration:
            break
        except OSError as exc:
            raise PakIOError(src_path, exc) from exc
        try:
            out.write(chunk)
        except OSError as exc:
            raise PakIOError(dest_path, exc) from exc
        written += len(chunk)
    return written


def read_record_data(f: BinaryIO, record: Record) -> bytes:
    """Convenience for small entries: the whole uncompressed payload as bytes."""
    return b"".join(iter_record_data(f, record))

