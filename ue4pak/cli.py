from __future__ import annotations

import argparse
import sys
from typing import Callable, List, Optional, Sequence, Tuple

from ue4pak.binio import parse_encoding
from ue4pak.codec import parse_compression_level, parse_compression_method
from ue4pak.constants import DEFAULT_BLOCK_SIZE, DEFAULT_VERSION, compression_method_name
from ue4pak.errors import PakError
from ue4pak.extract import UnpackOptions
from ue4pak.integrity import CheckOptions
from ue4pak.pathutil import PathFilter
from ue4pak.reader import OpenOptions, PakReader
from ue4pak.records import Record
from ue4pak.report import Reporter
from ue4pak.writer import PackOptions, expand_args, pack, parse_size


SORT_KEYS: dict = {
    "name": lambda r: r.filename,
    "size": lambda r: r.uncompressed_size,
    "compressed-size": lambda r: r.size,
    "offset": lambda r: r.offset,
    "compression-method": lambda r: r.compression_method,
}


def parse_order(value: str) -> List[Tuple[str, bool]]:
    """Parse ``--sort`` keys, e.g. ``-size,name``; a leading ``-`` inverts that key."""
    order: List[Tuple[str, bool]] = []
    for key in value.split(","):
        key = key.strip()
        if not key:
            continue
        reverse = key.startswith("-")
        if reverse:
            key = key[1:]
        if key not in SORT_KEYS:
            raise ValueError(f"illegal sort key: {key!r} (supported: {', '.join(SORT_KEYS)})")
        order.append((key, reverse))
    return order


def sort_records(records: Sequence[Record], order: List[Tuple[str, bool]]) -> List[Record]:
    out = list(records)
    # Stable sorts, least significant key first
    for key, reverse in reversed(order):
        out.sort(key=SORT_KEYS[key], reverse=reverse)
    return out


def format_size(size: int, human_readable: bool = False) -> str:
    if not human_readable or size < 1024:
        return str(size)
    value = float(size)
    for unit in ("K", "M", "G", "T"):
        value /= 1024.0
        if value < 1024.0 or unit == "T":
            break
    return f"{value:.1f}{unit}"


def _open_options(args: argparse.Namespace) -> OpenOptions:
    return OpenOptions(
        ignore_magic=args.ignore_magic,
        encoding=parse_encoding(args.encoding),
        force_version=args.force_version,
    )


def _path_filter(paths: Optional[List[str]]) -> Optional[Callable[[str], bool]]:
    filt = PathFilter(paths or [])
    return filt if filt else None


def cmd_info(archive: str, *, options: OpenOptions, human_readable: bool = False) -> bool:
    """Show a summary of a pak file.

    Args:
        archive: Path to a .pak file.
        options: Footer/index parsing options.
        human_readable: Print sizes with K/M/G suffixes.
    """
    with PakReader(archive, options) as r:
        pak = r.pak
        stored = sum(rec.size for rec in pak.records)
        uncompressed = sum(rec.uncompressed_size for rec in pak.records)
        print(f"Pak: {archive}")
        print(f"  Version: {pak.version}")
        print(f"  Index SHA-1: {pak.index_sha1.hex()}")
        print(f"  Index size: {format_size(pak.index_size, human_readable)}")
        print(f"  Mount point: {pak.mount_point if pak.mount_point is not None else '(none)'}")
        print(f"  Files: {len(pak)}")
        print(f"  Stored size: {format_size(stored, human_readable)}")
        print(f"  Uncompressed size: {format_size(uncompressed, human_readable)}")
        print(f"  Archive size: {format_size(pak.archive_size, human_readable)}")
    return True


def _print_table(records: Sequence[Record], human_readable: bool) -> None:
    header = ("Offset", "Size", "Compr-Method", "Compr-Size", "SHA1", "Filename")
    rows = [
        (
            str(rec.offset),
            format_size(rec.uncompressed_size, human_readable),
            compression_method_name(rec.compression_method),
            format_size(rec.size, human_readable),
            rec.sha1.hex(),
            rec.filename,
        )
        for rec in records
    ]
    widths = [max(len(row[i]) for row in [header] + rows) for i in range(len(header) - 1)]
    for row in [header] + rows:
        cells = [
            row[i].ljust(widths[i]) if i in (2, 4) else row[i].rjust(widths[i])
            for i in range(len(widths))
        ]
        print("  ".join(cells + [row[-1]]))


def cmd_list(
    archive: str,
    *,
    options: OpenOptions,
    paths: Optional[List[str]] = None,
    order: Optional[List[Tuple[str, bool]]] = None,
    only_names: bool = False,
    null_separated: bool = False,
    human_readable: bool = False,
    check_integrity: bool = False,
    ignore_null_checksums: bool = False,
) -> bool:
    """List the records of a pak file, optionally verifying them first."""
    path_filter = _path_filter(paths)
    reporter = Reporter(null_separated=null_separated)
    with PakReader(archive, options) as r:
        if check_integrity:
            check_opts = CheckOptions(abort_on_error=True, ignore_null_checksums=ignore_null_checksums)
            if r.check_integrity(check_opts, reporter, path_filter):
                return False
        records = [rec for rec in r.list() if path_filter is None or path_filter(rec.filename)]
    if order:
        records = sort_records(records, order)
    if only_names:
        for rec in records:
            print(rec.filename, end=reporter.sep)
    else:
        _print_table(records, human_readable)
    return True


def cmd_check(
    archive: str,
    *,
    options: OpenOptions,
    paths: Optional[List[str]] = None,
    null_separated: bool = False,
    ignore_null_checksums: bool = False,
    verbose: bool = False,
) -> bool:
    """Verify the index digest and every record digest.

    Every mismatch is reported; the return value is False when any was found.
    """
    reporter = Reporter(null_separated=null_separated, verbose=verbose)
    with PakReader(archive, options) as r:
        errors = r.check_integrity(
            CheckOptions(ignore_null_checksums=ignore_null_checksums),
            reporter,
            _path_filter(paths),
        )
    if errors:
        print(f"Found {errors} error(s)", end=reporter.sep)
        return False
    print("All ok", end=reporter.sep)
    return True


def cmd_unpack(
    archive: str,
    *,
    options: OpenOptions,
    outdir: str = ".",
    paths: Optional[List[str]] = None,
    dirname_from_compression: bool = False,
    check_integrity: bool = False,
    ignore_null_checksums: bool = False,
    null_separated: bool = False,
    verbose: bool = False,
) -> bool:
    """Extract files from a pak file below ``outdir``.

    Args:
        archive: Path to a .pak file.
        options: Footer/index parsing options.
        outdir: Destination directory; entries may not escape it.
        paths: Archive paths (files or directories) to extract; all when empty.
        dirname_from_compression: Put compressed files under a directory named after their method.
        check_integrity: Verify digests first and extract nothing on a mismatch.
    """
    reporter = Reporter(null_separated=null_separated, verbose=verbose)
    unpack_opts = UnpackOptions(
        dirname_from_compression=dirname_from_compression,
        check_integrity=check_integrity,
        abort_on_error=True,
        ignore_null_checksums=ignore_null_checksums,
    )
    with PakReader(archive, options) as r:
        errors = r.unpack(outdir, unpack_opts, reporter, _path_filter(paths))
    return errors == 0


def cmd_pack(
    archive: str,
    inputs: List[str],
    *,
    options: PackOptions,
    null_separated: bool = False,
    verbose: bool = False,
) -> bool:
    """Create a new pak file from host files and directories."""
    pack_paths = expand_args(inputs)
    if not pack_paths:
        raise ValueError("missing argument: PATH")
    reporter = Reporter(null_separated=null_separated, verbose=verbose)
    pack(archive, pack_paths, options, reporter)
    return True


def _add_read_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--ignore-magic", action="store_true", help="Don't error out if the file magic is wrong")
    ap.add_argument(
        "--encoding",
        "-e",
        default="UTF-8",
        help="Encoding of file names inside the pak: UTF-8, ASCII or Latin1 (default UTF-8)",
    )
    ap.add_argument("--force-version", type=int, help="Parse the pak as this version regardless of the footer")


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="ue4pak",
        description="Unreal Engine 4 .pak archive tool",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_info = sub.add_parser("info", help="Show summarized information of a pak")
    ap_info.add_argument("archive", help="Pak path")
    ap_info.add_argument("--human-readable", "-H", action="store_true", help="Print sizes like 1.0K, 2.2M")
    _add_read_args(ap_info)

    ap_list = sub.add_parser("list", help="List content of a pak")
    ap_list.add_argument("archive", help="Pak path")
    ap_list.add_argument("paths", nargs="*", help="Only list these archive paths (files or directories)")
    ap_list.add_argument("--only-names", "-n", action="store_true", help="Only print file names")
    ap_list.add_argument(
        "--sort",
        "-s",
        metavar="ORDER",
        help=(
            "Comma separated sort keys: name, size, compressed-size, offset, compression-method. "
            "Prefix a key with - to invert it, e.g. --sort=-size,name"
        ),
    )
    ap_list.add_argument("--human-readable", "-H", action="store_true", help="Print sizes like 1.0K, 2.2M")
    ap_list.add_argument("--check-integrity", action="store_true", help="Verify digests before listing")
    ap_list.add_argument("--ignore-null-checksums", action="store_true", help="Skip entries with an all-zero digest")
    ap_list.add_argument("--print0", "-0", action="store_true", help="Separate names with NUL (requires --only-names)")
    _add_read_args(ap_list)

    ap_check = sub.add_parser("check", help="Check consistency of a pak")
    ap_check.add_argument("archive", help="Pak path")
    ap_check.add_argument("paths", nargs="*", help="Only check these archive paths (files or directories)")
    ap_check.add_argument("--ignore-null-checksums", action="store_true", help="Skip entries with an all-zero digest")
    ap_check.add_argument("--print0", "-0", action="store_true", help="Separate output lines with NUL")
    ap_check.add_argument("--verbose", "-v", action="store_true", help="Print every verified file")
    _add_read_args(ap_check)

    ap_unpack = sub.add_parser("unpack", help="Unpack content of a pak")
    ap_unpack.add_argument("archive", help="Pak path")
    ap_unpack.add_argument("paths", nargs="*", help="Specific archive paths to extract (files or directories)")
    ap_unpack.add_argument("--outdir", "-o", default=".", help="Output directory")
    ap_unpack.add_argument(
        "--dirname-from-compression",
        "-d",
        action="store_true",
        help="Put compressed files into a directory named after the compression method",
    )
    ap_unpack.add_argument("--check-integrity", action="store_true", help="Verify digests before extracting")
    ap_unpack.add_argument("--ignore-null-checksums", action="store_true", help="Skip entries with an all-zero digest")
    ap_unpack.add_argument("--print0", "-0", action="store_true", help="Separate printed paths with NUL")
    ap_unpack.add_argument("--verbose", "-v", action="store_true", help="Print extracted paths")
    _add_read_args(ap_unpack)

    ap_pack = sub.add_parser("pack", help="Create a new pak")
    ap_pack.add_argument("archive", help="Output .pak path")
    ap_pack.add_argument(
        "inputs",
        nargs="+",
        help="Input files/directories; ':OPTIONS:PATH' sets per-file options, '@FILE' reads paths from FILE",
    )
    ap_pack.add_argument("--version", type=int, default=DEFAULT_VERSION, help="Pak version: 1, 2 or 3 (default 3). Version 1 stores a per-file timestamp: the creation time, or the modification time on Linux")
    ap_pack.add_argument("--mount-point", "-m", help="Mount point stored in the index")
    ap_pack.add_argument("--compression-method", "-c", default="none", help="none or zlib (default none)")
    ap_pack.add_argument(
        "--compression-block-size",
        "-b",
        default=str(DEFAULT_BLOCK_SIZE),
        help=f"Uncompressed bytes per compression block, K/M/G suffixes allowed (default {DEFAULT_BLOCK_SIZE})",
    )
    ap_pack.add_argument("--compression-level", "-l", default="default", help="fast, default, best or 1-9")
    ap_pack.add_argument("--encoding", "-e", default="UTF-8", help="Encoding of file names: UTF-8, ASCII or Latin1")
    ap_pack.add_argument("--print0", "-0", action="store_true", help="Separate printed paths with NUL")
    ap_pack.add_argument("--verbose", "-v", action="store_true", help="Print added paths")

    args = ap.parse_args(argv)
    if args.cmd == "list" and args.print0 and not args.only_names:
        ap_list.error("--print0 requires --only-names")
    try:
        if args.cmd == "info":
            ok = cmd_info(args.archive, options=_open_options(args), human_readable=args.human_readable)
        elif args.cmd == "list":
            ok = cmd_list(
                args.archive,
                options=_open_options(args),
                paths=args.paths,
                order=parse_order(args.sort) if args.sort else None,
                only_names=args.only_names,
                null_separated=args.print0,
                human_readable=args.human_readable,
                check_integrity=args.check_integrity,
                ignore_null_checksums=args.ignore_null_checksums,
            )
        elif args.cmd == "check":
            ok = cmd_check(
                args.archive,
                options=_open_options(args),
                paths=args.paths,
                null_separated=args.print0,
                ignore_null_checksums=args.ignore_null_checksums,
                verbose=args.verbose,
            )
        elif args.cmd == "unpack":
            ok = cmd_unpack(
                args.archive,
                options=_open_options(args),
                outdir=args.outdir,
                paths=args.paths,
                dirname_from_compression=args.dirname_from_compression,
                check_integrity=args.check_integrity,
                ignore_null_checksums=args.ignore_null_checksums,
                null_separated=args.print0,
                verbose=args.verbose,
            )
        elif args.cmd == "pack":
            pack_opts = PackOptions(
                version=args.version,
                mount_point=args.mount_point,
                compression_method=parse_compression_method(args.compression_method),
                compression_block_size=parse_size(args.compression_block_size),
                compression_level=parse_compression_level(args.compression_level),
                encoding=parse_encoding(args.encoding),
            )
            ok = cmd_pack(
                args.archive,
                args.inputs,
                options=pack_opts,
                null_separated=args.print0,
                verbose=args.verbose,
            )
        else:
            raise RuntimeError("Unknown command")
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (PakError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
