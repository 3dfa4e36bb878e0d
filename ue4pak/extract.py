from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Callable, Optional

from .blocks import copy_record_data, scratch_buffer
from .constants import compression_method_name
from .errors import PakIOError
from .integrity import CheckOptions, check_integrity
from .pathutil import safe_join
from .records import Record

if TYPE_CHECKING:
    from .reader import Pak
    from .report import Reporter


@dataclass
class UnpackOptions:
    # Route compressed entries into a subdirectory named after their method
    dirname_from_compression: bool = False
    check_integrity: bool = False
    abort_on_error: bool = True
    ignore_null_checksums: bool = False


def destination_for(record: Record, outdir: str, dirname_from_compression: bool = False) -> str:
    if dirname_from_compression and record.is_compressed:
        outdir = os.path.join(outdir, compression_method_name(record.compression_method))
    return safe_join(outdir, record.filename)


def unpack(
    pak: Pak,
    f: BinaryIO,
    outdir: str = ".",
    options: Optional[UnpackOptions] = None,
    reporter: Optional[Reporter] = None,
    path_filter: Optional[Callable[[str], bool]] = None,
    buffer: Optional[bytearray] = None,
    pak_path: Optional[str] = None,
) -> int:
    """
    Extract the records of ``pak`` below ``outdir``.

    Returns the number of checksum mismatches found by the optional
    integrity pass (0 when it is not requested). With ``abort_on_error`` a
    mismatch stops before any file is written; without it every selected
    record is still extracted. Read failures name ``pak_path``.
    """
    options = options or UnpackOptions()
    errors = 0
    if options.check_integrity:
        check_opts = CheckOptions(
            abort_on_error=options.abort_on_error,
            ignore_null_checksums=options.ignore_null_checksums,
        )
        try:
            errors = check_integrity(pak, f, check_opts, reporter, path_filter)
        except OSError as exc:
            raise PakIOError(pak_path, exc) from exc
        if errors and options.abort_on_error:
            return errors

    if not buffer:
        buffer = scratch_buffer()
    for record in pak.records:
        if path_filter is not None and not path_filter(record.filename):
            continue
        dest = destination_for(record, outdir, options.dirname_from_compression)
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(dest, "wb") as out:
                copy_record_data(f, record, out, buffer, src_path=pak_path, dest_path=dest)
        except OSError as exc:
            raise PakIOError(dest, exc) from exc
        if reporter is not None:
            reporter.added(dest)
    return errors
