from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from .binio import ENC_UTF8, BufferReader, read_exact
from .blocks import check_block_layout, read_record_data
from .constants import FOOTER_SIZE, PAK_MAGIC, SUPPORTED_VERSIONS
from .errors import (
    BadMagicError,
    CorruptIndexError,
    PakError,
    PakIOError,
    TruncatedError,
    UnsupportedVersionError,
)
from .extract import UnpackOptions, unpack
from .footer import read_footer
from .integrity import CheckOptions, check_integrity
from .records import Record, read_index_entry
from .report import Reporter


@dataclass(frozen=True)
class OpenOptions:
    ignore_magic: bool = False
    encoding: str = ENC_UTF8
    force_version: Optional[int] = None


@dataclass(frozen=True)
class Pak:
    version: int
    index_offset: int
    index_size: int
    index_sha1: bytes
    mount_point: Optional[str]
    records: Tuple[Record, ...]
    # SHA-1 of the index bytes as read (or written); compared by check_index
    computed_index_sha1: bytes
    encoding: str = ENC_UTF8

    @property
    def footer_offset(self) -> int:
        return self.index_offset + self.index_size

    @property
    def archive_size(self) -> int:
        return self.footer_offset + FOOTER_SIZE

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)


def resolve_version(version: int, force_version: Optional[int] = None) -> int:
    if force_version is not None:
        version = force_version
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersionError(f"unsupported version: {version}")
    return version


def parse_index(data: bytes, version: int, index_offset: int, encoding: str = ENC_UTF8) -> Tuple[Optional[str], List[Record]]:
    """
    Decode the mount point and every record of a raw index buffer.

    Records are read back to back until the buffer is exhausted; a record
    cut short by the end of the buffer is a CorruptIndexError. Each record is
    also checked for payload bounds and a consistent block table, so that
    later reads never chase offsets outside the data region.
    """
    buf = BufferReader(data)
    records: List[Record] = []
    try:
        mount_point = buf.string(encoding)
        while buf.remaining > 0:
            record = read_index_entry(buf, version, encoding)
            if record.data_end > index_offset:
                raise CorruptIndexError(f"{record.filename}: data bleeds into index")
            check_block_layout(record)
            records.append(record)
    except TruncatedError as exc:
        raise CorruptIndexError(f"truncated index: {exc}") from exc
    return (mount_point or None), records


def read_pak(f: BinaryIO, options: Optional[OpenOptions] = None) -> Pak:
    """Parse footer and index from an open binary stream. The stream is not retained."""
    options = options or OpenOptions()
    footer = read_footer(f)
    if not options.ignore_magic and footer.magic != PAK_MAGIC:
        raise BadMagicError(f"illegal file magic: 0x{footer.magic:08x}")
    version = resolve_version(footer.version, options.force_version)
    if footer.index_offset + footer.index_size != footer.offset:
        raise CorruptIndexError(
            f"index ({footer.index_offset} + {footer.index_size}) does not end at the footer ({footer.offset})"
        )
    f.seek(footer.index_offset)
    try:
        data = read_exact(f, footer.index_size)
    except TruncatedError as exc:
        raise CorruptIndexError(str(exc)) from exc
    mount_point, records = parse_index(data, version, footer.index_offset, options.encoding)
    return Pak(
        version=version,
        index_offset=footer.index_offset,
        index_size=footer.index_size,
        index_sha1=footer.index_sha1,
        mount_point=mount_point,
        records=tuple(records),
        computed_index_sha1=hashlib.sha1(data).digest(),
        encoding=options.encoding,
    )


def open_pak(path: str, options: Optional[OpenOptions] = None) -> Pak:
    try:
        with open(path, "rb") as f:
            return read_pak(f, options)
    except OSError as exc:
        raise PakIOError(path, exc) from exc


class PakReader:
    """Keeps a pak file open for repeated integrity checks and extraction."""

    def __init__(self, path: str, options: Optional[OpenOptions] = None):
        self.path = path
        self.options = options or OpenOptions()
        self.f: Optional[BinaryIO] = None
        self.pak: Optional[Pak] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        try:
            self.f = open(self.path, "rb")
        except OSError as exc:
            raise PakIOError(self.path, exc) from exc
        try:
            self.pak = read_pak(self.f, self.options)
        except (PakError, OSError) as exc:
            # Ensure file handle is closed on failure to avoid leaks
            self.close()
            if isinstance(exc, OSError):
                raise PakIOError(self.path, exc) from exc
            raise

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def _require_open(self) -> Tuple[BinaryIO, Pak]:
        if self.f is None or self.pak is None:
            raise RuntimeError("Pak not open")
        return self.f, self.pak

    def list(self) -> Tuple[Record, ...]:
        return self._require_open()[1].records

    def find(self, filename: str) -> Optional[Record]:
        for record in self.list():
            if record.filename == filename:
                return record
        return None

    def check_integrity(
        self,
        options: Optional[CheckOptions] = None,
        reporter: Optional[Reporter] = None,
        path_filter: Optional[Callable[[str], bool]] = None,
    ) -> int:
        f, pak = self._require_open()
        try:
            return check_integrity(pak, f, options, reporter, path_filter)
        except OSError as exc:
            raise PakIOError(self.path, exc) from exc

    def read(self, record: Record) -> bytes:
        f, _ = self._require_open()
        try:
            return read_record_data(f, record)
        except OSError as exc:
            raise PakIOError(self.path, exc) from exc

    def unpack(
        self,
        outdir: str = ".",
        options: Optional[UnpackOptions] = None,
        reporter: Optional[Reporter] = None,
        path_filter: Optional[Callable[[str], bool]] = None,
    ) -> int:
        f, pak = self._require_open()
        return unpack(pak, f, outdir, options, reporter, path_filter, pak_path=self.path)
