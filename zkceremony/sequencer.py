"""
Contribution folder ordering.

Folder names are a 4-digit zero-padded ordinal, an underscore and a label
("0007_alice", "0000_initial", "0012_final"). Fixed width makes the
lexicographic order of names the numeric order of ordinals. Gaps between
ordinals are tolerated; next ordinals are always max + 1.

The remote archive is authoritative for "latest": a participant must
contribute on top of the archived state, not a stale local copy.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .archive.client import ArchiveClient
from .config import CeremonySettings
from .errors import ArchiveError, ArchiveUnavailableError, PreconditionError

logger = logging.getLogger(__name__)

FOLDER_PATTERN = re.compile(r"^(\d{4})_(.+)$")
MAX_ORDINAL = 9999
FINAL_LABEL = "final"
LABEL_MAX_LENGTH = 64

_LABEL_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True, order=True)
class ContributionFolder:
    """A folder in the ceremony sequence. Ordered by name."""

    name: str

    @classmethod
    def parse(cls, name: str) -> ContributionFolder | None:
        if not FOLDER_PATTERN.match(name):
            return None
        return cls(name)

    @classmethod
    def build(cls, ordinal: int | str, label: str) -> ContributionFolder:
        prefix = ordinal if isinstance(ordinal, str) else format_ordinal(ordinal)
        return cls(f"{prefix}_{label}")

    @property
    def ordinal(self) -> int:
        return int(self.name[:4])

    @property
    def label(self) -> str:
        return self.name[5:]

    @property
    def is_final(self) -> bool:
        return self.label == FINAL_LABEL


def format_ordinal(value: int) -> str:
    if not (0 <= value <= MAX_ORDINAL):
        raise PreconditionError(f"Contribution ordinal {value} is outside 0000-{MAX_ORDINAL}")
    return f"{value:04d}"


def sanitize_label(raw: str, *, reserved: tuple[str, ...] = (FINAL_LABEL,)) -> str:
    """
    Make a contributor identity safe for folder names and tool arguments.

    Characters outside [A-Za-z0-9._-] become '-', leading dots and dashes
    are dropped and the result is capped at 64 characters. Labels that
    carry a meaning in the sequence (`reserved`, compared case-insensitively)
    are refused.
    """
    label = _LABEL_DISALLOWED.sub("-", raw.strip()).lstrip(".-")[:LABEL_MAX_LENGTH]
    if not label:
        raise ValueError(f"Contributor identity {raw!r} contains no usable characters")
    if label.lower() in {r.lower() for r in reserved}:
        raise ValueError(f"Contributor identity {raw!r} is reserved for ceremony folders")
    return label


class FolderSequencer:
    """Assign ordinals and locate the latest folder across local and remote."""

    def __init__(
        self,
        root: Path,
        settings: CeremonySettings,
        archive: ArchiveClient | None = None,
    ) -> None:
        self.root = root
        self.settings = settings
        self.archive = archive

    def list_local(self) -> list[ContributionFolder]:
        if not self.root.is_dir():
            return []
        folders = (ContributionFolder.parse(p.name) for p in self.root.iterdir() if p.is_dir())
        return sorted(f for f in folders if f is not None)

    def list_remote(self) -> list[ContributionFolder] | None:
        """Folders in the archive, or None if the archive cannot be listed."""
        if self.archive is None:
            return None
        if not self.archive.is_available():
            logger.warning("Archive not available; folder ordering uses local folders only")
            return None
        try:
            entries = self.archive.list(self.settings.root_prefix)
        except (ArchiveError, ArchiveUnavailableError) as e:
            logger.warning("Could not list archive folders (%s); using local folders only", e)
            return None
        folders = (ContributionFolder.parse(e.name) for e in entries if e.is_prefix)
        return sorted(f for f in folders if f is not None)

    def list_folders(self) -> list[ContributionFolder]:
        """Union of local and remote folders, in sequence order."""
        merged = set(self.list_local())
        merged.update(self.list_remote() or [])
        return sorted(merged)

    def latest(self) -> ContributionFolder | None:
        """
        The folder the next step must build on.

        Remote wins when it can be listed; local is only the fallback.
        """
        local = self.list_local()
        remote = self.list_remote() or []

        if remote:
            candidate = remote[-1]
            if local and local[-1] > candidate:
                logger.warning(
                    "Local folder %s is newer than the archived latest %s and is not archived; ignoring it",
                    local[-1].name,
                    candidate.name,
                )
            return candidate
        return local[-1] if local else None

    def final_folder(self) -> ContributionFolder | None:
        """The finalization folder, if the ceremony has already been closed."""
        finals = [f for f in self.list_folders() if f.is_final]
        return finals[-1] if finals else None

    def claimed(self, ordinal: str) -> list[ContributionFolder]:
        return [f for f in self.list_folders() if f.name[:4] == ordinal]

    def next_ordinal(self, *, seed_verified: bool = False) -> str:
        """
        max(existing ordinal) + 1, zero-padded to 4 digits.

        With no folders at all the answer is "0001", but only when the
        caller has separately verified the seed folder.
        """
        folders = self.list_folders()
        if not folders:
            if not seed_verified:
                raise PreconditionError(
                    f"No contribution folders found and seed folder '{self.settings.seed_folder}' is not present",
                    hint="Configure archive access to download the initial setup, "
                    f"or place it in {self.root / self.settings.seed_folder}.",
                )
            return format_ordinal(1)
        return format_ordinal(max(f.ordinal for f in folders) + 1)
