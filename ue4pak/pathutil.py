from __future__ import annotations

import os
from typing import Iterable

from .errors import PathTraversalError


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise PathTraversalError(f"Path may not contain '..': {p!r}")
    return "/".join(parts)


def host_to_archive_path(path: str) -> str:
    return norm_path(path.replace(os.sep, "/"))


def safe_join(root: str, archive_path: str) -> str:
    """Join ``archive_path`` under ``root``, refusing anything that escapes it."""
    raw = archive_path.replace("\\", "/")
    parts = [q for q in raw.split("/") if q not in ("", ".")]
    if not parts:
        raise PathTraversalError(f"empty archive path: {archive_path!r}")
    # A bare drive such as "C:" only means something as the first segment
    first = parts[0]
    if os.path.splitdrive(raw)[0] or (len(first) == 2 and first[0].isalpha() and first[1] == ":"):
        raise PathTraversalError(f"archive path escapes the output directory: {archive_path!r}")
    for q in parts:
        if q == "..":
            raise PathTraversalError(f"archive path escapes the output directory: {archive_path!r}")
    dest = os.path.join(root, *parts)
    real_root = os.path.realpath(root)
    real_dest = os.path.realpath(dest)
    if os.path.commonpath([real_root, real_dest]) != real_root:
        raise PathTraversalError(f"archive path escapes the output directory: {archive_path!r}")
    return dest


class PathFilter:
    """Accepts archive paths equal to, or below, any of the given paths."""

    def __init__(self, paths: Iterable[str]):
        self.paths = {norm_path(p) for p in paths}

    def __bool__(self) -> bool:
        return bool(self.paths)

    def __call__(self, name: str) -> bool:
        parts = [q for q in name.replace("\\", "/").split("/") if q not in ("", ".")]
        if "/".join(parts) in self.paths:
            return True
        return any("/".join(parts[:i]) in self.paths for i in range(1, len(parts)))
