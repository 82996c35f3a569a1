"""
One participant's contribution.

States: ALLOCATING → TRANSFORMING → ATTESTING → DONE, FAILED from any of
them. Nothing is attested until every artifact has been transformed; a
failure leaves the partial folder on disk for manual inspection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from rich.console import Console

from ..archive.client import ArchiveClient
from ..attestation import (
    ATTESTATION_FILE,
    CONTRIBUTION_NOTE_FILE,
    ArtifactDigest,
    ContributionAttestation,
    contribution_note_text,
    transcript_name,
    transcript_text,
    utc_now_iso,
    verification_key_name,
    write_exclusive,
    write_json_exclusive,
)
from ..config import CeremonySettings
from ..entropy import EntropyMixer
from ..errors import ArchiveError, ArchiveUnavailableError, PreconditionError, TransformError
from ..journal import CeremonyJournal
from ..paths import list_suffixed
from ..sequencer import FINAL_LABEL, ContributionFolder, FolderSequencer, sanitize_label
from ..sync import ArtifactSyncChecker, SyncReport
from ..transform.runner import TransformRunner
from ..transform.snarkjs import INSTALL_HINT as TRANSFORM_INSTALL_HINT

logger = logging.getLogger(__name__)


class ContributionState(str, Enum):
    ALLOCATING = "ALLOCATING"
    TRANSFORMING = "TRANSFORMING"
    ATTESTING = "ATTESTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class ContributionResult:
    folder: ContributionFolder
    previous: ContributionFolder
    attestation: ContributionAttestation
    attestation_path: Path
    sync_report: SyncReport | None = None


class ContributionCeremony:
    """Orchestrates a single contribution on top of the latest folder."""

    OPERATION = "contribute"

    def __init__(
        self,
        root: Path,
        settings: CeremonySettings,
        *,
        archive: ArchiveClient | None,
        runner: TransformRunner,
        mixer: EntropyMixer,
        sequencer: FolderSequencer | None = None,
        sync: ArtifactSyncChecker | None = None,
        journal: CeremonyJournal | None = None,
        console: Console | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.root = root
        self.settings = settings
        self.archive = archive
        self.runner = runner
        self.mixer = mixer
        self.console = console or Console(stderr=True)
        self.sequencer = sequencer or FolderSequencer(root, settings, archive)
        self.sync = sync or ArtifactSyncChecker(root, settings, archive, console=self.console)
        self.journal = journal or CeremonyJournal(root)
        self.clock = clock
        self.state: ContributionState | None = None
        self._folder: ContributionFolder | None = None

    def _enter(self, state: ContributionState, **details: object) -> None:
        self.state = state
        logger.debug("Contribution state -> %s", state.value)
        self.journal.record(
            self.OPERATION,
            state.value,
            folder=self._folder.name if self._folder else None,
            details=dict(details),
        )

    def reserved_labels(self) -> tuple[str, ...]:
        """Labels a contributor may not take: the final folder's and the seed's."""
        seed = ContributionFolder.parse(self.settings.seed_folder)
        return (FINAL_LABEL, seed.label) if seed else (FINAL_LABEL,)

    def run(self, contributor: str) -> ContributionResult:
        try:
            label = sanitize_label(contributor, reserved=self.reserved_labels())
        except ValueError as e:
            raise PreconditionError(str(e), hint="Use your GitHub username.") from e

        self._folder = None
        self._enter(ContributionState.ALLOCATING, contributor=label)
        try:
            previous = self.prepare()
            folder = self.allocate(label)
            timestamp = self.clock()

            self._enter(ContributionState.TRANSFORMING, previous=previous.name)
            artifacts = self.transform(previous, folder, label, timestamp)

            self._enter(ContributionState.ATTESTING, artifacts=len(artifacts))
            attestation, attestation_path = self.attest(folder, label, timestamp, artifacts)

            report = self.publish(folder)
            self._enter(ContributionState.DONE, healed=report.healed)
        except Exception as e:
            failed_in = self.state.value if self.state else None
            self._enter(ContributionState.FAILED, stage=failed_in, error=str(e))
            raise

        return ContributionResult(
            folder=folder,
            previous=previous,
            attestation=attestation,
            attestation_path=attestation_path,
            sync_report=report,
        )

    # -------------------------------------------------------------------------
    # ALLOCATING
    # -------------------------------------------------------------------------

    def prepare(self) -> ContributionFolder:
        """
        Bring the seed folder and the true latest folder into the local tree.

        Returns the folder this contribution builds on.
        """
        if not self.runner.is_available():
            raise TransformError("Transform tool is not installed", hint=TRANSFORM_INSTALL_HINT)

        self.console.print("\n[bold]Ensuring initial setup is available...[/]")
        self.sync.ensure_folder(self.settings.seed_folder, self.settings.artifact_suffix)

        closed = self.sequencer.final_folder()
        if closed is not None:
            raise PreconditionError(f"The ceremony was finalized in {closed.name}; no further contributions")

        latest = self.sequencer.latest()
        if latest is None:
            raise PreconditionError("At least the initial folder is required.")
        if latest.name != self.settings.seed_folder:
            self.console.print(f"\n[bold]Fetching latest contribution {latest.name}...[/]")
            self.sync.ensure_folder(latest.name, self.settings.artifact_suffix)
        return latest

    def allocate(self, label: str) -> ContributionFolder:
        ordinal = self.sequencer.next_ordinal(seed_verified=True)
        claimed = self.sequencer.claimed(ordinal)
        if claimed:
            raise PreconditionError(f"Ordinal {ordinal} is already claimed by {claimed[0].name}")

        folder = ContributionFolder.build(ordinal, label)
        path = self.root / folder.name
        try:
            path.mkdir(parents=True, exist_ok=False)
        except FileExistsError as e:
            raise PreconditionError(f"Folder {path} already exists") from e
        self._folder = folder
        self.console.print(f"Created contribution folder {folder.name}", style="dim")
        return folder

    # -------------------------------------------------------------------------
    # TRANSFORMING
    # -------------------------------------------------------------------------

    def transform(
        self,
        previous: ContributionFolder,
        folder: ContributionFolder,
        label: str,
        timestamp: str,
    ) -> list[str]:
        suffix = self.settings.artifact_suffix
        prev_dir = self.root / previous.name
        new_dir = self.root / folder.name
        artifacts = list_suffixed(prev_dir, suffix)
        if not artifacts:
            raise PreconditionError(f"No {suffix} files found in {previous.name}")

        self.console.print(f"Using source contribution from folder: {previous.name}")
        self.console.print(f"Found {len(artifacts)} {suffix} file(s) to contribute to.")

        seed = self.mixer.collect()
        display_name = f"Contribution #{folder.name[:4]} from {label}"
        try:
            for name in artifacts:
                self.console.print(f"\n[bold]Contributing to {name}...[/]")
                output = new_dir / name
                self.runner.contribute(prev_dir / name, output, self.mixer.derive(seed, name), display_name)
                self.runner.export_verification_key(output, new_dir / verification_key_name(name, suffix))
                write_exclusive(new_dir / transcript_name(name), transcript_text(name, label, timestamp))
                self.console.print(f"[green]✓[/] Contribution to {name} complete")
        finally:
            del seed
        return artifacts

    # -------------------------------------------------------------------------
    # ATTESTING
    # -------------------------------------------------------------------------

    def attest(
        self,
        folder: ContributionFolder,
        label: str,
        timestamp: str,
        artifacts: list[str],
    ) -> tuple[ContributionAttestation, Path]:
        new_dir = self.root / folder.name
        attestation = ContributionAttestation(
            contributor=label,
            contribution_number=folder.name[:4],
            timestamp=timestamp,
            files=tuple(ArtifactDigest.of(new_dir / name) for name in artifacts),
        )
        write_exclusive(new_dir / CONTRIBUTION_NOTE_FILE, contribution_note_text(label, timestamp))
        path = write_json_exclusive(new_dir / ATTESTATION_FILE, attestation.to_dict())
        self.console.print(f"[green]✓[/] Attestation generated at {path}")
        return attestation, path

    # -------------------------------------------------------------------------
    # DONE
    # -------------------------------------------------------------------------

    def publish(self, folder: ContributionFolder) -> SyncReport:
        """Upload the attested folder, then verify it against the archive."""
        if self.archive is None or not self.archive.is_available():
            raise ArchiveUnavailableError(
                f"Cannot upload {folder.name}: archive not available",
                hint=f"Your contribution is attested locally; run `zkceremony upload {folder.name}` once the archive is reachable.",
            )
        prefix = self.settings.folder_prefix(folder.name)
        self.console.print(f"\n[bold]Uploading {folder.name} to {self.archive.describe(prefix)}...[/]")
        try:
            self.archive.upload_tree(self.root / folder.name, prefix)
        except ArchiveError as e:
            raise ArchiveError(
                str(e),
                hint=f"Your contribution is attested locally; run `zkceremony upload {folder.name}` to retry.",
            ) from e
        self.console.print("[green]✓[/] Upload complete")

        self.console.print("\n[bold]Verifying uploaded contribution...[/]")
        report = self.sync.check(folder.name)
        if not report.in_sync:
            logger.warning("Post-upload divergence for %s: %s", folder.name, report.to_dict())
        return report
