"""
ue4pak: reader, writer and checker for Unreal Engine 4 .pak archives.

Features:

- Pak versions 1, 2 and 3: 44 byte footer, index of per-file records, data section.
- Stored and zlib compressed payloads; version 3 splits compressed files into
  independently deflated blocks.
- SHA-1 verification of the whole index and of every record's stored bytes.
- Extraction that refuses archive paths escaping the output directory.
- UTF-8, ASCII and Latin-1 file name encodings.

Encryption and compression methods other than zlib are recognised in the
index but cannot be read or written.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "reader",
    "writer",
    "integrity",
    "extract",
]

# Programmatic API lives in ue4pak.reader (open_pak/PakReader), ue4pak.writer
# (pack/PakWriter) and the CLI functions in ue4pak.cli (cmd_pack/cmd_unpack).
