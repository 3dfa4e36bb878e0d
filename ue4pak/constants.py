# Footer magic and layout
PAK_MAGIC = 0x5A6F12E1
FOOTER_SIZE = 44  # magic u32, version u32, index_offset u64, index_size u64, index_sha1[20]

SUPPORTED_VERSIONS = (1, 2, 3)
DEFAULT_VERSION = 3

# Compression method codes as stored in a record
COMPR_NONE = 0x00
COMPR_ZLIB = 0x01
COMPR_BIAS_MEMORY = 0x10
COMPR_BIAS_SPEED = 0x20

COMPR_METHOD_NAMES = {
    COMPR_NONE: "none",
    COMPR_ZLIB: "zlib",
    COMPR_BIAS_MEMORY: "bias-memory",
    COMPR_BIAS_SPEED: "bias-speed",
}

# Methods this implementation can actually store and restore
SUPPORTED_COMPRESSION_METHODS = (COMPR_NONE, COMPR_ZLIB)

COMPR_LEVEL_FAST = 1
COMPR_LEVEL_DEFAULT = 6
COMPR_LEVEL_BEST = 9

DEFAULT_BLOCK_SIZE = 65_536  # 64 KiB
BUFFER_SIZE = 2 * 1024 * 1024  # 2 MiB scratch buffer for payload transfer

SHA1_SIZE = 20
NULL_SHA1 = b"\x00" * SHA1_SIZE


def compression_method_name(method: int) -> str:
    return COMPR_METHOD_NAMES.get(method, f"unknown-0x{method:02x}")
