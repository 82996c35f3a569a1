"""
Archive client protocol.

The remote archive is an object store addressed by keys relative to the
bucket root. Core components only depend on this protocol; concrete
adapters shell out to a storage CLI or mirror keys onto a directory.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..errors import ArchiveError, ArchiveUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteEntry:
    """One listing row: an object (with size) or a common prefix."""

    key: str
    size: int = 0
    is_prefix: bool = False

    @property
    def name(self) -> str:
        """Last path component, without a trailing slash."""
        return self.key.rstrip("/").rsplit("/", 1)[-1]


@runtime_checkable
class ArchiveClient(Protocol):
    """Operations the ceremony needs from the remote archive."""

    def is_available(self) -> bool:
        """Whether the collaborator can be used at all."""
        ...

    def describe(self, key: str) -> str:
        """Human-readable location of `key` for messages."""
        ...

    def list(self, prefix: str, *, recursive: bool = False) -> list[RemoteEntry]:
        """
        List entries under `prefix`.

        Non-recursive listings return immediate children, sub-prefixes
        flagged with is_prefix. Recursive listings return every object
        key below the prefix. Keys are always full keys.
        """
        ...

    def download(self, key: str, dest: Path) -> None:
        """Copy a single object to a local file path."""
        ...

    def download_tree(self, prefix: str, dest_dir: Path) -> None:
        """Copy every object under `prefix` below `dest_dir`."""
        ...

    def upload_tree(self, src_dir: Path, prefix: str) -> None:
        """Copy every file below `src_dir` under `prefix`."""
        ...


class LocalArchiveClient:
    """
    Archive mirrored onto a local directory.

    Key "a/b/c.zkey" is the file <base>/a/b/c.zkey. Useful for offline
    ceremonies (archive on a shared mount) and as a test double.
    """

    def __init__(self, base: Path, *, available: bool = True) -> None:
        self.base = base
        self._available = available

    def _require(self) -> None:
        if not self._available:
            raise ArchiveUnavailableError(f"Archive directory {self.base} is not available")

    def _path(self, key: str) -> Path:
        return self.base / key.lstrip("/")

    def is_available(self) -> bool:
        return self._available

    def describe(self, key: str) -> str:
        return str(self._path(key))

    def list(self, prefix: str, *, recursive: bool = False) -> list[RemoteEntry]:
        self._require()
        directory = self._path(prefix)
        if not directory.is_dir():
            return []
        base = prefix if prefix.endswith("/") or not prefix else prefix + "/"
        if recursive:
            return [
                RemoteEntry(key=base + p.relative_to(directory).as_posix(), size=p.stat().st_size)
                for p in sorted(directory.rglob("*"))
                if p.is_file()
            ]
        entries: list[RemoteEntry] = []
        for p in sorted(directory.iterdir()):
            if p.is_dir():
                entries.append(RemoteEntry(key=f"{base}{p.name}/", is_prefix=True))
            else:
                entries.append(RemoteEntry(key=base + p.name, size=p.stat().st_size))
        return entries

    def download(self, key: str, dest: Path) -> None:
        self._require()
        src = self._path(key)
        if not src.is_file():
            raise ArchiveError(f"Object not found in archive: {key}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
        logger.debug("Copied %s -> %s", src, dest)

    def download_tree(self, prefix: str, dest_dir: Path) -> None:
        self._require()
        src = self._path(prefix)
        if not src.is_dir():
            raise ArchiveError(f"Prefix not found in archive: {prefix}")
        shutil.copytree(src, dest_dir, dirs_exist_ok=True)

    def upload_tree(self, src_dir: Path, prefix: str) -> None:
        self._require()
        if not src_dir.is_dir():
            raise ArchiveError(f"Local folder does not exist: {src_dir}")
        shutil.copytree(src_dir, self._path(prefix), dirs_exist_ok=True)
