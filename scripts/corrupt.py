from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Optional

from ue4pak.errors import PakError
from ue4pak.reader import PakReader


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.archive, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_record(args: argparse.Namespace) -> None:
    with PakReader(args.archive) as r:
        record = r.find(args.name) if args.name else next(iter(r.list()), None)
    if record is None:
        raise ValueError(f"No such record: {args.name}" if args.name else "Pak has no records")
    if args.within < 0 or args.within >= record.size:
        raise ValueError(f"--within must be within the stored size (0..{record.size - 1})")
    off = record.offset + args.within
    _flip_byte(args.archive, off, xor_val=args.xor)
    print(f"Flipped 1 byte in {record.filename} at pak offset {off}")


def cmd_index(args: argparse.Namespace) -> None:
    with PakReader(args.archive) as r:
        pak = r.pak
    if args.within < 0 or args.within >= pak.index_size:
        raise ValueError(f"--within must be within the index (0..{pak.index_size - 1})")
    off = pak.index_offset + args.within
    _flip_byte(args.archive, off, xor_val=args.xor)
    print(f"Flipped 1 byte in the index at pak offset {off}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    flips = 0
    size = os.path.getsize(args.archive)
    with open(args.archive, "r+b") as f:
        for _ in range(args.count):
            pos = rng.randrange(0, size)
            f.seek(pos)
            b = f.read(1)
            if not b:
                continue
            f.seek(pos)
            f.write(bytes([b[0] ^ (args.xor & 0xFF)]))
            flips += 1
        f.flush()
        os.fsync(f.fileno())
    print(f"Flipped {flips} byte(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="ue4pak.corrupt", description="Corrupt .pak files for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute pak offset")
    p_off.add_argument("archive", help="Path to .pak file")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset in the pak")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_rec = sub.add_parser("record", help="Flip a byte in the stored bytes of one record")
    p_rec.add_argument("archive", help="Path to .pak file")
    p_rec.add_argument("--name", help="Archive path of the record (default: first record)")
    p_rec.add_argument("--within", type=int, default=0, help="Byte offset within the stored bytes (default 0)")
    p_rec.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rec.set_defaults(func=cmd_record)

    p_idx = sub.add_parser("index", help="Flip a byte inside the index region")
    p_idx.add_argument("archive", help="Path to .pak file")
    p_idx.add_argument("--within", type=int, default=0, help="Byte offset within the index (default 0)")
    p_idx.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_idx.set_defaults(func=cmd_index)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in the pak")
    p_rand.add_argument("archive", help="Path to .pak file")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (PakError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
