"""
Local file enumeration shared by every sync check.

Relative paths are always POSIX-style strings so they compare directly
with archive keys.
"""

from __future__ import annotations

import fnmatch
from pathlib import Path, PurePosixPath

# Platform incidental files that never count as divergence.
IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db", ".directory"})
IGNORED_PATTERNS = ("._*",)


def is_ignored(relative_path: str) -> bool:
    """True if the basename of `relative_path` is a platform incidental file."""
    name = PurePosixPath(relative_path).name
    if name in IGNORED_NAMES:
        return True
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in IGNORED_PATTERNS)


def filter_ignored(paths: set[str] | list[str]) -> set[str]:
    return {p for p in paths if p and not is_ignored(p)}


def list_relative_files(root: Path) -> set[str]:
    """
    Recursively list files under `root` as relative POSIX paths.

    Ignored files are excluded. A missing root yields an empty set.
    """
    if not root.is_dir():
        return set()
    return filter_ignored(
        {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()}
    )


def list_suffixed(directory: Path, suffix: str) -> list[str]:
    """Sorted names of the files directly inside `directory` ending with `suffix`."""
    if not directory.is_dir():
        return []
    return sorted(
        p.name for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix) and not is_ignored(p.name)
    )


def has_suffixed(directory: Path, suffix: str) -> bool:
    return bool(list_suffixed(directory, suffix))


def is_confined(relative_path: str) -> bool:
    """True if `relative_path` stays inside the directory it is relative to."""
    pure = PurePosixPath(relative_path)
    if pure.is_absolute() or not pure.parts:
        return False
    return ".." not in pure.parts
