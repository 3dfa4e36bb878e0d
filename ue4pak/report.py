from __future__ import annotations

import sys
from typing import Optional, TextIO

from .errors import ChecksumMismatch


class Reporter:
    """Prints integrity failures and added/extracted paths for the CLI.

    Mismatches always go to ``err``; path events only when ``verbose``.
    Every event is terminated by the record separator (newline, or NUL for
    ``--print0``).
    """

    def __init__(
        self,
        *,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        null_separated: bool = False,
        verbose: bool = False,
    ) -> None:
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.null_separated = null_separated
        self.verbose = verbose

    @property
    def sep(self) -> str:
        return "\0" if self.null_separated else "\n"

    def checksum_mismatch(self, mismatch: ChecksumMismatch) -> None:
        print(
            f"{mismatch.filename}: checksum mismatch\n"
            f"\tgot:      {mismatch.actual.hex()}\n"
            f"\texpected: {mismatch.expected.hex()}",
            end=self.sep,
            file=self.err,
        )

    def added(self, path: str) -> None:
        if self.verbose:
            print(path, end=self.sep, file=self.out)

    def checked(self, filename: str) -> None:
        if self.verbose:
            print(f"{filename}: OK", end=self.sep, file=self.out)
