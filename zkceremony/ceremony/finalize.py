"""
Ceremony finalization.

Applies the public randomness beacon to the latest contribution, verifies
each result against its constraint system and publishes the attestation.
Every stage is fatal on error except the final upload and sync check,
which only warn: the finalized folder is complete locally by then.
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
    BEACON_METADATA_FILE,
    FINAL_ATTESTATION_FILE,
    ArtifactDigest,
    BeaconMetadata,
    render_final_attestation,
    utc_now_iso,
    verification_key_name,
    write_exclusive,
    write_json_exclusive,
)
from ..config import CeremonySettings
from ..errors import ArchiveError, ArchiveUnavailableError, PreconditionError, TransformError
from ..journal import CeremonyJournal
from ..paths import list_suffixed
from ..sequencer import FINAL_LABEL, ContributionFolder, FolderSequencer
from ..sync import ArtifactSyncChecker, SyncReport
from ..transform.runner import TransformRunner
from ..transform.snarkjs import INSTALL_HINT as TRANSFORM_INSTALL_HINT

logger = logging.getLogger(__name__)


class FinalizationStage(str, Enum):
    PREPARING = "PREPARING"
    BEACON = "BEACON"
    ATTESTING = "ATTESTING"
    PUBLISHING = "PUBLISHING"
    DONE = "DONE"
    FAILED = "FAILED"


def match_constraint_file(circuit_name: str, candidates: list[str], suffix: str) -> str | None:
    """
    Pick the constraint file for a circuit.

    Exact stem match first, then a case-insensitive substring match in
    either direction. None when nothing matches.
    """

    def stem(name: str) -> str:
        return name[: -len(suffix)] if name.endswith(suffix) else name

    for candidate in candidates:
        if stem(candidate) == circuit_name:
            return candidate

    wanted = circuit_name.lower()
    for candidate in candidates:
        lowered = candidate.lower()
        candidate_stem = stem(lowered)
        if wanted in lowered or (candidate_stem and candidate_stem in wanted):
            return candidate
    return None


@dataclass
class FinalizationResult:
    folder: ContributionFolder
    source: ContributionFolder
    digests: list[ArtifactDigest]
    attestation_path: Path
    metadata_path: Path
    uploaded: bool = False
    sync_report: SyncReport | None = None


class FinalizationCeremony:
    OPERATION = "finalize"

    def __init__(
        self,
        root: Path,
        settings: CeremonySettings,
        *,
        archive: ArchiveClient | None,
        runner: TransformRunner,
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
        self.console = console or Console(stderr=True)
        self.sequencer = sequencer or FolderSequencer(root, settings, archive)
        self.sync = sync or ArtifactSyncChecker(root, settings, archive, console=self.console)
        self.journal = journal or CeremonyJournal(root)
        self.clock = clock
        self.stage: FinalizationStage | None = None
        self._folder: ContributionFolder | None = None

    def _enter(self, state: FinalizationStage, **details: object) -> None:
        self.stage = state
        logger.debug("Finalization stage -> %s", state.value)
        self.journal.record(
            self.OPERATION,
            state.value,
            folder=self._folder.name if self._folder else None,
            details=dict(details),
        )

    def run(self) -> FinalizationResult:
        self._folder = None
        self._enter(FinalizationStage.PREPARING)
        try:
            source, constraint_dir = self.prepare()
            final = self.allocate(source)
            ptau = self.sync.ensure_file(self.settings.ptau_key, self.root / self.settings.ptau_name)

            self._enter(FinalizationStage.BEACON, source=source.name)
            artifacts = self.apply_beacon(source, final, constraint_dir, ptau)

            self._enter(FinalizationStage.ATTESTING, artifacts=len(artifacts))
            timestamp = self.clock()
            digests, attestation_path, metadata_path = self.attest(final, timestamp)

            self._enter(FinalizationStage.PUBLISHING)
            uploaded, report = self.publish(final)
            self._enter(FinalizationStage.DONE, uploaded=uploaded)
        except Exception as e:
            failed_in = self.stage.value if self.stage else None
            self._enter(FinalizationStage.FAILED, stage=failed_in, error=str(e))
            raise

        return FinalizationResult(
            folder=final,
            source=source,
            digests=digests,
            attestation_path=attestation_path,
            metadata_path=metadata_path,
            uploaded=uploaded,
            sync_report=report,
        )

    def prepare(self) -> tuple[ContributionFolder, Path]:
        """Ensure inputs are local; return (latest contribution, constraint folder)."""
        if not self.runner.is_available():
            raise TransformError("Transform tool is not installed", hint=TRANSFORM_INSTALL_HINT)

        self.console.print("\n[bold]Ensuring initial setup is available...[/]")
        self.sync.ensure_folder(self.settings.seed_folder, self.settings.artifact_suffix)
        constraint_dir = self.sync.ensure_folder(self.settings.constraint_folder, self.settings.constraint_suffix)

        closed = self.sequencer.final_folder()
        if closed is not None:
            raise PreconditionError(f"The ceremony was already finalized in {closed.name}")

        self.console.print("\n[bold]Checking for latest contribution...[/]")
        latest = self.sequencer.latest()
        if latest is None or latest.name == self.settings.seed_folder:
            raise PreconditionError("No contributions found. Cannot finalize the ceremony.")
        self.sync.ensure_folder(latest.name, self.settings.artifact_suffix)
        self.console.print(f"Using latest contribution: {latest.name}")
        return latest, constraint_dir

    def allocate(self, source: ContributionFolder) -> ContributionFolder:
        final = ContributionFolder.build(source.ordinal + 1, FINAL_LABEL)
        claimed = self.sequencer.claimed(final.name[:4])
        if claimed:
            raise PreconditionError(f"Ordinal {final.name[:4]} is already claimed by {claimed[0].name}")
        try:
            (self.root / final.name).mkdir(parents=True, exist_ok=False)
        except FileExistsError as e:
            raise PreconditionError(
                f"Folder {final.name} already exists",
                hint="A previous finalization attempt left it behind; inspect and delete it before retrying.",
            ) from e
        self._folder = final
        return final

    def apply_beacon(
        self,
        source: ContributionFolder,
        final: ContributionFolder,
        constraint_dir: Path,
        ptau: Path,
    ) -> list[str]:
        suffix = self.settings.artifact_suffix
        beacon = self.settings.beacon
        source_dir = self.root / source.name
        final_dir = self.root / final.name

        artifacts = list_suffixed(source_dir, suffix)
        if not artifacts:
            raise PreconditionError(f"No {suffix} files found in the last contribution folder: {source.name}")
        constraint_files = list_suffixed(constraint_dir, self.settings.constraint_suffix)

        self.console.print(f"\n[bold]Applying random beacon from Ethereum block #{beacon.block_number}...[/]")
        self.console.print(f"Block hash: {beacon.block_hash}", style="dim")

        for name in artifacts:
            output = final_dir / name
            self.runner.apply_beacon(
                source_dir / name,
                output,
                beacon.hash_hex,
                beacon.iterations,
                f"Final Beacon from Ethereum block #{beacon.block_number}",
            )

            circuit = name[: -len(suffix)]
            match = match_constraint_file(circuit, constraint_files, self.settings.constraint_suffix)
            if match is None:
                raise PreconditionError(
                    f"Could not find a matching constraint file for {name}",
                    hint=f"Available constraint files: {', '.join(constraint_files) or 'none'}",
                )
            if match[: -len(self.settings.constraint_suffix)] != circuit:
                self.console.print(f"[yellow]No exact constraint file for {name}; using partial match {match}[/]")

            self.console.print(f"Verifying {name} against {match}...")
            self.runner.verify(constraint_dir / match, ptau, output)
            self.runner.export_verification_key(output, final_dir / verification_key_name(name, suffix))
            self.console.print(f"[green]✓[/] Generated and verified final {name}")
        return artifacts

    def attest(self, final: ContributionFolder, timestamp: str) -> tuple[list[ArtifactDigest], Path, Path]:
        final_dir = self.root / final.name
        names = list_suffixed(final_dir, self.settings.artifact_suffix)
        if not names:
            raise PreconditionError(f"No {self.settings.artifact_suffix} files found in the final folder: {final.name}")
        digests = [ArtifactDigest.of(final_dir / name) for name in names]

        beacon = self.settings.beacon
        attestation_path = write_exclusive(
            final_dir / FINAL_ATTESTATION_FILE,
            render_final_attestation(beacon, timestamp, digests),
        )
        metadata_path = write_json_exclusive(
            final_dir / BEACON_METADATA_FILE,
            BeaconMetadata.from_params(beacon, timestamp).to_dict(),
        )
        self.console.print(f"[green]✓[/] Attestation written to {attestation_path}")
        self.console.print(f"[green]✓[/] Beacon metadata written to {metadata_path}")
        return digests, attestation_path, metadata_path

    def publish(self, final: ContributionFolder) -> tuple[bool, SyncReport | None]:
        """Upload and verify; failures here only warn."""
        if self.archive is None or not self.archive.is_available():
            self.console.print("[yellow]⚠ Archive not available; upload skipped.[/]")
            return False, None

        prefix = self.settings.folder_prefix(final.name)
        self.console.print(f"\n[bold]Uploading {final.name} to {self.archive.describe(prefix)}...[/]")
        try:
            self.archive.upload_tree(self.root / final.name, prefix)
        except (ArchiveError, ArchiveUnavailableError) as e:
            logger.warning("Upload of %s failed: %s", final.name, e)
            self.console.print(f"[yellow]⚠ Upload failed: {e}[/]")
            return False, None
        self.console.print("[green]✓[/] Final contribution uploaded")

        self.console.print("\n[bold]Performing final verification of files...[/]")
        report = self.sync.check(final.name)
        if not report.in_sync:
            logger.warning("Post-upload divergence for %s: %s", final.name, report.to_dict())
        return True, report
