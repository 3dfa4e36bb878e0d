from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Callable, Iterable, Optional

from .binio import readinto_exact
from .blocks import scratch_buffer
from .constants import NULL_SHA1
from .errors import ChecksumMismatch
from .records import Record

if TYPE_CHECKING:
    from .reader import Pak
    from .report import Reporter


INDEX_NAME = "<archive index>"


@dataclass
class CheckOptions:
    abort_on_error: bool = False
    ignore_null_checksums: bool = False


def hash_range(f: BinaryIO, offset: int, size: int, buffer: bytearray) -> bytes:
    """SHA-1 of ``size`` bytes at ``offset``; short reads raise TruncatedError."""
    hasher = hashlib.sha1()
    view = memoryview(buffer)
    f.seek(offset)
    remaining = size
    while remaining > 0:
        chunk = view[: min(remaining, len(view))]
        readinto_exact(f, chunk)
        hasher.update(chunk)
        remaining -= len(chunk)
    return hasher.digest()


def _skip(digest: bytes, options: CheckOptions) -> bool:
    return options.ignore_null_checksums and digest == NULL_SHA1


def _report(reporter: Optional[Reporter], mismatch: ChecksumMismatch) -> None:
    if reporter is not None:
        reporter.checksum_mismatch(mismatch)


def check_index(pak: Pak, options: Optional[CheckOptions] = None, reporter: Optional[Reporter] = None) -> int:
    """Compare the footer's index digest with the digest taken when the index was read."""
    options = options or CheckOptions()
    if _skip(pak.index_sha1, options) or pak.computed_index_sha1 == pak.index_sha1:
        return 0
    _report(reporter, ChecksumMismatch(INDEX_NAME, pak.index_sha1, pak.computed_index_sha1))
    return 1


def check_records(
    records: Iterable[Record],
    f: BinaryIO,
    options: Optional[CheckOptions] = None,
    reporter: Optional[Reporter] = None,
    buffer: Optional[bytearray] = None,
) -> int:
    """
    Hash each record's stored bytes (compressed if compressed) and compare
    them with the digest in the index.

    Returns the number of mismatches. With ``abort_on_error`` the scan stops
    at the first one. Read failures are not counted; they propagate.
    """
    options = options or CheckOptions()
    if not buffer:
        buffer = scratch_buffer()
    errors = 0
    for record in records:
        if _skip(record.sha1, options):
            continue
        digest = hash_range(f, record.offset, record.size, buffer)
        if digest != record.sha1:
            errors += 1
            _report(reporter, ChecksumMismatch(record.filename, record.sha1, digest))
            if options.abort_on_error:
                break
        elif reporter is not None:
            reporter.checked(record.filename)
    return errors


def check_integrity(
    pak: Pak,
    f: BinaryIO,
    options: Optional[CheckOptions] = None,
    reporter: Optional[Reporter] = None,
    path_filter: Optional[Callable[[str], bool]] = None,
) -> int:
    """Check the index digest, then every record accepted by ``path_filter``."""
    options = options or CheckOptions()
    errors = check_index(pak, options, reporter)
    if errors and options.abort_on_error:
        return errors
    records = pak.records if path_filter is None else [r for r in pak.records if path_filter(r.filename)]
    return errors + check_records(records, f, options, reporter)
