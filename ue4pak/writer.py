from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, replace
from typing import BinaryIO, Iterable, Iterator, List, Optional, Tuple

from .binio import ENC_UTF8, pack_string
from .blocks import scratch_buffer, write_blocks, write_stored
from .codec import parse_compression_level, parse_compression_method, unsupported_method
from .constants import (
    COMPR_LEVEL_DEFAULT,
    COMPR_NONE,
    COMPR_ZLIB,
    DEFAULT_BLOCK_SIZE,
    DEFAULT_VERSION,
    SUPPORTED_COMPRESSION_METHODS,
)
from .errors import PakError, PakIOError, UnsupportedCompressionMethodError
from .footer import pack_footer
from .pathutil import host_to_archive_path, norm_path
from .reader import Pak, resolve_version
from .records import Record, pack_index_entry
from .report import Reporter


_U32_MAX = 0xFFFFFFFF
_SIZE_SUFFIXES = {"K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


@dataclass
class PackOptions:
    version: int = DEFAULT_VERSION
    mount_point: Optional[str] = None
    compression_method: int = COMPR_NONE
    compression_block_size: int = DEFAULT_BLOCK_SIZE
    compression_level: int = COMPR_LEVEL_DEFAULT
    encoding: str = ENC_UTF8


@dataclass
class PackPath:
    """A host path to pack plus its per-file overrides."""

    filename: str
    # Archive path replacing the default one (the path relative to the argument's parent)
    rename: Optional[str] = None
    compression_method: Optional[int] = None
    compression_block_size: Optional[int] = None
    compression_level: Optional[int] = None


@dataclass
class SourceFile:
    host_path: str
    archive_path: str
    compression_method: int
    compression_block_size: int
    compression_level: int


def parse_size(value: str) -> int:
    """Parse ``123``, ``64K``, ``1M``, ``2G`` (binary units) into a positive u32."""
    text = value.strip().upper()
    if text.endswith("B"):
        text = text[:-1]
    mult = 1
    if text and text[-1] in _SIZE_SUFFIXES:
        mult = _SIZE_SUFFIXES[text[-1]]
        text = text[:-1]
    try:
        size = int(text) * mult
    except ValueError:
        raise ValueError(f"illegal size: {value!r}") from None
    if size <= 0 or size > _U32_MAX:
        raise ValueError(f"size out of range: {value!r}")
    return size


def parse_pack_path(arg: str) -> PackPath:
    """Parse ``PATH`` or ``:OPTIONS:PATH``.

    OPTIONS is a comma separated list of ``zlib``, ``none``, ``level=N``,
    ``block_size=N`` and ``rename=ARCHIVE/PATH``.
    """
    if not arg.startswith(":"):
        return PackPath(arg)
    end = arg.find(":", 1)
    if end < 0:
        raise ValueError(f"missing ':' after pack path options: {arg!r}")
    pack_path = PackPath(arg[end + 1 :])
    for opt in arg[1:end].split(","):
        opt = opt.strip()
        if not opt:
            continue
        key, sep, val = opt.partition("=")
        key = key.strip().lower()
        if not sep:
            pack_path.compression_method = parse_compression_method(key)
        elif key == "level":
            pack_path.compression_level = parse_compression_level(val)
        elif key == "block_size":
            pack_path.compression_block_size = parse_size(val)
        elif key == "rename":
            pack_path.rename = val
        else:
            raise ValueError(f"illegal pack path option: {opt!r}")
    if not pack_path.filename:
        raise ValueError(f"empty path in pack path argument: {arg!r}")
    return pack_path


def read_list_file(path: str) -> List[PackPath]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as exc:
        raise PakIOError(path, exc) from exc
    return [parse_pack_path(line) for line in (ln.strip() for ln in lines) if line]


def expand_args(args: Iterable[str]) -> List[PackPath]:
    """Turn CLI arguments into pack paths, expanding ``@LISTFILE`` arguments."""
    out: List[PackPath] = []
    for arg in args:
        if arg.startswith("@"):
            out.extend(read_list_file(arg[1:]))
        else:
            out.append(parse_pack_path(arg))
    return out


def _archive_base(pack_path: PackPath) -> str:
    if pack_path.rename is not None:
        return norm_path(pack_path.rename)
    return host_to_archive_path(os.path.basename(os.path.normpath(os.path.abspath(pack_path.filename))))


def iter_sources(pack_paths: Iterable[PackPath], options: PackOptions) -> Iterator[SourceFile]:
    """
    Resolve pack paths into files to store, in order.

    A directory contributes every regular file below it, sorted, with archive
    paths relative to the directory's parent. Per-file overrides fall back to
    the build-wide defaults in ``options``.
    """
    for pp in pack_paths:
        method = options.compression_method if pp.compression_method is None else pp.compression_method
        block_size = pp.compression_block_size or options.compression_block_size
        level = options.compression_level if pp.compression_level is None else pp.compression_level
        base = _archive_base(pp)
        if os.path.isdir(pp.filename):
            found: List[Tuple[str, str]] = []
            for root, dirnames, filenames in os.walk(pp.filename):
                dirnames.sort()
                for fn in filenames:
                    full = os.path.join(root, fn)
                    if not os.path.isfile(full):
                        continue
                    rel = host_to_archive_path(os.path.relpath(full, start=pp.filename))
                    found.append((rel, full))
            for rel, full in sorted(found):
                arc = f"{base}/{rel}" if base else rel
                yield SourceFile(full, arc, method, block_size, level)
        else:
            if not base:
                raise ValueError(f"cannot derive an archive path for {pp.filename!r}")
            yield SourceFile(pp.filename, base, method, block_size, level)


def creation_timestamp(path: str, st: os.stat_result) -> int:
    """
    Version 1 entry timestamp as Unix seconds.

    Uses the host creation time (``st_birthtime``) where the platform reports
    one. Linux does not, so there the modification time is stored instead.
    """
    ts = getattr(st, "st_birthtime", None)
    if ts is None:
        ts = st.st_mtime
    ts = int(ts)
    if ts < 0:
        raise PakError(f"{path}: timestamp {ts} predates the Unix epoch")
    return ts


def check_method(method: int, version: int, context: Optional[str] = None) -> None:
    if method not in SUPPORTED_COMPRESSION_METHODS:
        raise unsupported_method(method, context)
    # Versions before 3 have no block table to describe compressed payloads
    if method == COMPR_ZLIB and version < 3:
        msg = f"zlib compression requires version 3 or later, got version {version}"
        raise UnsupportedCompressionMethodError(f"{context}: {msg}" if context else msg)


class PakWriter:
    """
    Writes payloads first and the index plus footer on ``finalize``.

    The data section starts at file offset 0, so every record's ``offset`` is
    the absolute position of its payload.
    """

    def __init__(self, out_path: str, options: Optional[PackOptions] = None):
        self.out_path = out_path
        self.options = options or PackOptions()
        self.version = resolve_version(self.options.version)
        self.f: Optional[BinaryIO] = None
        self.records: List[Record] = []
        self.data_size = 0
        self.buffer = scratch_buffer()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        try:
            self.f = open(self.out_path, "wb")
        except OSError as exc:
            raise PakIOError(self.out_path, exc) from exc

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def add_file(
        self,
        arc_path: str,
        fs_path: str,
        compression_method: Optional[int] = None,
        compression_block_size: Optional[int] = None,
        compression_level: Optional[int] = None,
    ) -> Record:
        """Stream a host file into the archive and remember its record."""
        if self.f is None:
            raise RuntimeError("Pak not open")
        arc_path = norm_path(arc_path)
        method = self.options.compression_method if compression_method is None else compression_method
        check_method(method, self.version, arc_path)
        try:
            with open(fs_path, "rb") as src:
                st = os.fstat(src.fileno())
                timestamp = creation_timestamp(fs_path, st) if self.version == 1 else None
                record = self._write_payload(arc_path, src, st.st_size, method, compression_block_size, compression_level)
        except OSError as exc:
            raise PakIOError(fs_path, exc) from exc
        if timestamp is not None:
            record = replace(record, timestamp=timestamp)
        self.records.append(record)
        return record

    def _write_payload(
        self,
        arc_path: str,
        src: BinaryIO,
        size: int,
        method: int,
        block_size: Optional[int],
        level: Optional[int],
    ) -> Record:
        offset = self.data_size
        if method == COMPR_NONE:
            sha1 = write_stored(self.f, src, size, self.buffer)
            self.data_size += size
            return Record(arc_path, offset, size, size, COMPR_NONE, None, sha1)
        block_size = block_size or self.options.compression_block_size
        # A single block never needs to be larger than the file itself
        if size and block_size > size:
            block_size = size
        if level is None:
            level = self.options.compression_level
        stored, sha1, blocks = write_blocks(self.f, src, size, block_size, level, self.buffer)
        self.data_size += stored
        return Record(
            arc_path,
            offset,
            stored,
            size,
            method,
            None,
            sha1,
            compression_blocks=blocks,
            encrypted=False,
            compression_block_size=block_size,
        )

    def build_index(self) -> bytes:
        encoding = self.options.encoding
        out = bytearray(pack_string(self.options.mount_point or "", encoding))
        for record in self.records:
            out += pack_index_entry(record, self.version, encoding)
        return bytes(out)

    def finalize(self) -> Pak:
        """Write the index and footer; returns the model of the finished archive."""
        if self.f is None:
            raise RuntimeError("Pak not open")
        index = self.build_index()
        index_sha1 = hashlib.sha1(index).digest()
        index_offset = self.data_size
        self.f.write(index)
        self.f.write(pack_footer(self.version, index_offset, len(index), index_sha1))
        self.f.flush()
        return Pak(
            version=self.version,
            index_offset=index_offset,
            index_size=len(index),
            index_sha1=index_sha1,
            mount_point=self.options.mount_point or None,
            records=tuple(self.records),
            computed_index_sha1=index_sha1,
            encoding=self.options.encoding,
        )


def pack(
    pak_path: str,
    pack_paths: Iterable[PackPath],
    options: Optional[PackOptions] = None,
    reporter: Optional[Reporter] = None,
) -> Pak:
    """
    Build a pak file from host files and directories.

    Version, compression methods and the input list are validated before the
    output file is created. A failure while streaming leaves a truncated,
    invalid archive behind.
    """
    options = options or PackOptions()
    version = resolve_version(options.version)
    sources = list(iter_sources(pack_paths, options))
    for src in sources:
        check_method(src.compression_method, version, src.archive_path)
    with PakWriter(pak_path, options) as w:
        for src in sources:
            w.add_file(
                src.archive_path,
                src.host_path,
                compression_method=src.compression_method,
                compression_block_size=src.compression_block_size,
                compression_level=src.compression_level,
            )
            if reporter is not None:
                reporter.added(src.archive_path)
        return w.finalize()
