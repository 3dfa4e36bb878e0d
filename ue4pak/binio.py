from __future__ import annotations

import struct
from typing import BinaryIO, Union

from .errors import IllegalEncodingError, TruncatedError


ENC_UTF8 = "utf-8"
ENC_ASCII = "ascii"
ENC_LATIN1 = "latin1"

_ENCODING_ALIASES = {
    "utf-8": ENC_UTF8,
    "utf8": ENC_UTF8,
    "ascii": ENC_ASCII,
    "us-ascii": ENC_ASCII,
    "latin1": ENC_LATIN1,
    "latin-1": ENC_LATIN1,
    "iso-8859-1": ENC_LATIN1,
}

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

Buffer = Union[bytes, bytearray, memoryview]


def parse_encoding(name: str) -> str:
    """Map a user supplied codec name onto one of ENC_UTF8, ENC_ASCII, ENC_LATIN1."""
    try:
        return _ENCODING_ALIASES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unsupported encoding: {name!r} (supported: UTF-8, ASCII, Latin1)") from None


def _utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise IllegalEncodingError(f"string {text!r} is not encodable as UTF-8: {exc.reason}") from exc


def encode_text(text: str, encoding: str = ENC_UTF8) -> bytes:
    if encoding == ENC_UTF8:
        return _utf8(text)
    if encoding == ENC_ASCII:
        raw = _utf8(text)
        for byte in raw:
            if byte > 127:
                raise IllegalEncodingError(
                    f"Illegal byte 0x{byte:02x} ({byte}) for ASCII codec in string: {text!r}"
                )
        return raw
    if encoding == ENC_LATIN1:
        for ch in text:
            if ord(ch) > 255:
                raise IllegalEncodingError(
                    f"Illegal char {ch!r} (0x{ord(ch):x}) for Latin1 codec in string: {text!r}"
                )
        return bytes(ord(ch) for ch in text)
    raise ValueError(f"unsupported encoding: {encoding!r}")


def decode_text(raw: Buffer, encoding: str = ENC_UTF8) -> str:
    raw = bytes(raw)
    if encoding == ENC_UTF8:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IllegalEncodingError(f"invalid UTF-8 in string {raw!r}: {exc.reason}") from exc
    if encoding == ENC_ASCII:
        for byte in raw:
            if byte > 127:
                raise IllegalEncodingError(
                    f"Illegal byte 0x{byte:02x} ({byte}) for ASCII codec in string: {raw!r}"
                )
        return raw.decode("ascii")
    if encoding == ENC_LATIN1:
        return raw.decode("latin1")
    raise ValueError(f"unsupported encoding: {encoding!r}")


def pack_string(text: str, encoding: str = ENC_UTF8) -> bytes:
    # length prefix counts encoded bytes, not characters
    raw = encode_text(text, encoding)
    return _U32.pack(len(raw)) + raw


def read_exact(f: BinaryIO, n: int) -> bytes:
    b = f.read(n)
    if b is None or len(b) != n:
        raise TruncatedError(f"unexpected end of file: wanted {n} bytes, got {len(b or b'')}")
    return b


def readinto_exact(f: BinaryIO, view: memoryview) -> None:
    pos = 0
    while pos < len(view):
        n = f.readinto(view[pos:])
        if not n:
            raise TruncatedError(f"unexpected end of file: wanted {len(view)} bytes, got {pos}")
        pos += n


class BufferReader:
    """Cursor over an in-memory buffer (the index region) with bounds checks."""

    def __init__(self, data: Buffer):
        self.data = memoryview(data)
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read(self, n: int) -> memoryview:
        if n > self.remaining:
            raise TruncatedError(
                f"truncated at offset {self.pos}: wanted {n} bytes, {self.remaining} remaining"
            )
        out = self.data[self.pos : self.pos + n]
        self.pos += n
        return out

    def u8(self) -> int:
        return self.read(1)[0]

    def u32(self) -> int:
        return _U32.unpack(self.read(4))[0]

    def u64(self) -> int:
        return _U64.unpack(self.read(8))[0]

    def string(self, encoding: str = ENC_UTF8) -> str:
        length = self.u32()
        return decode_text(self.read(length), encoding)
