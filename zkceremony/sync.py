"""
Local/archive convergence for contribution folders.

check() compares the file set of a local folder with the objects under
the folder's archive prefix and heals the local side by fetching only
the missing files. Healing is file-granular and idempotent: re-running
it once both sides match does nothing. Files present locally but not in
the archive are reported and never touched.

ensure_folder() / ensure_file() are the fetch-if-missing helpers used for
inputs a ceremony cannot run without.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from .archive.client import ArchiveClient
from .config import CeremonySettings
from .errors import ArchiveError, ArchiveUnavailableError, PreconditionError
from .paths import filter_ignored, has_suffixed, is_confined, list_relative_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    """
    Outcome of one sync check.

    fetched/failed/rejected describe what the heal did on this run and are
    excluded from equality, so two runs over unchanged state compare equal.
    """

    folder: str
    missing_locally: frozenset[str] = frozenset()
    missing_remotely: frozenset[str] = frozenset()
    healed: bool = False
    remote_available: bool = True
    reason: str | None = None
    fetched: tuple[str, ...] = field(default=(), compare=False)
    failed: tuple[str, ...] = field(default=(), compare=False)
    rejected: tuple[str, ...] = field(default=(), compare=False)

    @property
    def in_sync(self) -> bool:
        return self.healed and not self.missing_remotely

    def to_dict(self) -> dict[str, Any]:
        return {
            "folder": self.folder,
            "missing_locally": sorted(self.missing_locally),
            "missing_remotely": sorted(self.missing_remotely),
            "healed": self.healed,
            "remote_available": self.remote_available,
            "reason": self.reason,
            "fetched": list(self.fetched),
            "failed": list(self.failed),
            "rejected": list(self.rejected),
        }


class ArtifactSyncChecker:
    def __init__(
        self,
        root: Path,
        settings: CeremonySettings,
        archive: ArchiveClient | None,
        *,
        console: Console | None = None,
    ) -> None:
        self.root = root
        self.settings = settings
        self.archive = archive
        self.console = console or Console(stderr=True)

    def _archive_ready(self) -> bool:
        return self.archive is not None and self.archive.is_available()

    def _require_archive(self) -> ArchiveClient:
        if self.archive is None:
            raise ArchiveUnavailableError("No archive configured")
        return self.archive

    def remote_files(self, folder: str) -> set[str]:
        """Relative paths of every object under the folder's archive prefix."""
        archive = self._require_archive()
        prefix = self.settings.folder_prefix(folder)
        entries = archive.list(prefix, recursive=True)
        # Zero-byte "dir/" keys are directory markers, not files.
        return filter_ignored(
            {
                e.key[len(prefix) :]
                for e in entries
                if not e.is_prefix and e.key.startswith(prefix) and not e.key.endswith("/")
            }
        )

    def check(self, folder: str) -> SyncReport:
        """Compare, heal missing artifacts locally, and report."""
        if not self._archive_ready():
            logger.warning("Archive not available; skipping sync check of %s", folder)
            return SyncReport(folder=folder, remote_available=False, reason="archive unavailable")

        self.console.print(f"Cross-checking {folder} against the archive...", style="dim")
        try:
            remote = self.remote_files(folder)
        except (ArchiveError, ArchiveUnavailableError) as e:
            logger.warning("Could not list archive files for %s: %s", folder, e)
            return SyncReport(folder=folder, remote_available=False, reason=str(e))

        if not remote:
            logger.warning("No files found in the archive for %s", folder)
            return SyncReport(folder=folder, reason="no files in archive")

        local_dir = self.root / folder
        local = list_relative_files(local_dir)
        missing_locally = remote - local
        missing_remotely = local - remote

        fetched: list[str] = []
        failed: list[str] = []
        rejected: list[str] = []
        if missing_locally:
            self.console.print(
                f"[yellow]Missing {len(missing_locally)} file(s) locally that exist in the archive for {folder}[/]"
            )
            for rel in sorted(missing_locally):
                self.console.print(f"  - {rel}", style="dim")
            if any(rel.endswith(self.settings.heal_suffixes) for rel in missing_locally):
                fetched, failed, rejected = self.heal(folder, missing_locally)
                local = list_relative_files(local_dir)
                missing_locally = remote - local

        if missing_remotely:
            self.console.print(
                f"{len(missing_remotely)} file(s) exist locally but not in the archive for {folder}",
                style="dim",
            )

        healed = not missing_locally
        if healed:
            self.console.print(f"[green]✓[/] All archived files for {folder} are present locally")
        else:
            self.console.print(f"[yellow]Still missing {len(missing_locally)} file(s) for {folder}[/]")

        return SyncReport(
            folder=folder,
            missing_locally=frozenset(missing_locally),
            missing_remotely=frozenset(missing_remotely),
            healed=healed,
            fetched=tuple(fetched),
            failed=tuple(failed),
            rejected=tuple(rejected),
        )

    def heal(self, folder: str, paths: set[str]) -> tuple[list[str], list[str], list[str]]:
        """
        Fetch each path individually into the local folder.

        Returns (fetched, failed, rejected). Paths escaping the folder are
        rejected without a transfer.
        """
        archive = self._require_archive()
        local_dir = self.root / folder
        fetched: list[str] = []
        failed: list[str] = []
        rejected: list[str] = []
        for rel in sorted(paths):
            if not is_confined(rel):
                logger.warning("Refusing to fetch %r: path escapes %s", rel, folder)
                rejected.append(rel)
                continue
            dest = local_dir / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            try:
                archive.download(self.settings.folder_key(folder, rel), dest)
            except (ArchiveError, ArchiveUnavailableError) as e:
                logger.error("Failed to download %s: %s", rel, e)
                failed.append(rel)
                continue
            fetched.append(rel)
        self.console.print(f"Downloaded {len(fetched)}/{len(paths)} missing file(s) for {folder}", style="dim")
        return fetched, failed, rejected

    # -------------------------------------------------------------------------
    # Fetch-if-missing
    # -------------------------------------------------------------------------

    def ensure_folder(self, folder: str, suffix: str) -> Path:
        """
        Make sure `folder` exists locally with at least one `suffix` file.

        A present folder is cross-checked (and healed); an absent one is
        downloaded whole.

        Raises:
            PreconditionError: the folder cannot be obtained.
        """
        local_dir = self.root / folder
        if has_suffixed(local_dir, suffix):
            self.console.print(f"{folder} exists locally with required {suffix} files.", style="dim")
            self.check(folder)
            return local_dir

        hint = (
            "You need either a working archive configuration to download it, "
            f"or the files placed in {local_dir} (including {suffix} files)."
        )
        if not self._archive_ready():
            raise PreconditionError(
                f"{folder} is missing locally and the archive is not available",
                hint=hint,
            )

        archive = self._require_archive()
        prefix = self.settings.folder_prefix(folder)
        self.console.print(f"Downloading {folder} from {archive.describe(prefix)}...")
        try:
            archive.download_tree(prefix, local_dir)
        except (ArchiveError, ArchiveUnavailableError) as e:
            raise PreconditionError(f"Could not download {folder}: {e}", hint=hint) from e

        if not has_suffixed(local_dir, suffix):
            raise PreconditionError(f"Downloaded {folder} has no {suffix} files", hint=hint)
        self.console.print(f"[green]✓[/] {folder} downloaded")
        return local_dir

    def ensure_file(self, key: str, dest: Path) -> Path:
        """Fetch a single archived file unless it already exists locally."""
        if dest.is_file():
            self.console.print(f"Using existing {dest}", style="dim")
            return dest
        if not self._archive_ready():
            raise PreconditionError(
                f"{dest.name} is missing locally and the archive is not available",
                hint=f"Place {dest.name} at {dest} or configure archive access.",
            )
        archive = self._require_archive()
        self.console.print(f"Downloading {archive.describe(key)}...")
        try:
            archive.download(key, dest)
        except (ArchiveError, ArchiveUnavailableError) as e:
            raise PreconditionError(f"Failed to download required file {dest.name}: {e}") from e
        self.console.print(f"[green]✓[/] {dest.name} downloaded")
        return dest
