from __future__ import annotations

from typing import Optional


class PakError(Exception):
    """Base class for pak-specific errors."""


# Footer/version
class BadMagicError(PakError):
    pass


class UnsupportedVersionError(PakError):
    pass


# Structural decode failures
class CorruptIndexError(PakError):
    pass


class CorruptDataError(PakError):
    pass


class TruncatedError(PakError):
    pass


class IllegalEncodingError(PakError):
    pass


class UnsupportedCompressionMethodError(PakError):
    pass


class PathTraversalError(PakError):
    pass


class ChecksumMismatch(PakError):
    """A stored SHA-1 digest did not match the bytes on disk."""

    def __init__(self, filename: str, expected: bytes, actual: bytes):
        super().__init__(
            f"{filename}: checksum mismatch (expected {expected.hex()}, got {actual.hex()})"
        )
        self.filename = filename
        self.expected = expected
        self.actual = actual


class PakIOError(PakError):
    """Host I/O failure, annotated with the path that caused it."""

    def __init__(self, path: Optional[str], cause: OSError):
        msg = cause.strerror or str(cause)
        super().__init__(f"{path}: {msg}" if path else msg)
        self.path = path
        self.cause = cause


class EncryptedRecordError(PakError):
    pass
