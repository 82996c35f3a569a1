"""Archive-facing commands: sync-check, upload, status."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..archive.client import ArchiveClient
from ..attestation import ATTESTATION_FILE, FINAL_ATTESTATION_FILE, ContributionAttestation
from ..config import CeremonySettings
from ..errors import ArchiveError, ArchiveUnavailableError, CeremonyError, PreconditionError
from ..journal import CeremonyJournal
from ..paths import is_confined
from ..sequencer import ContributionFolder, FolderSequencer, format_ordinal
from ..sync import ArtifactSyncChecker
from .common import print_error


def run_sync_check(
    root: Path,
    settings: CeremonySettings,
    archive: ArchiveClient,
    folder: str,
    *,
    output_json: bool = False,
    console: Console | None = None,
) -> int:
    """Cross-check one folder with the archive, healing missing artifacts.

    Returns:
        Exit code (0 = nothing archived is missing locally, 1 otherwise)
    """
    console = console or Console(stderr=True)
    if not is_confined(folder) or "/" in folder:
        print_error(console, PreconditionError(f"Invalid folder name: {folder}"))
        return 1

    checker = ArtifactSyncChecker(root, settings, archive, console=console)
    report = checker.check(folder)

    if output_json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.healed else 1

    if not report.remote_available:
        console.print(f"[yellow]⚠ Archive not available ({report.reason}); {folder} was not checked.[/]")
        return 1
    if report.reason:
        console.print(f"[yellow]⚠ {folder}: {report.reason}[/]")
        return 1

    for rel in sorted(report.missing_remotely):
        console.print(f"  local only: {rel}", style="dim")
    for rel in report.failed:
        console.print(f"  [red]failed:[/] {rel}")
    for rel in report.rejected:
        console.print(f"  [red]rejected (unsafe path):[/] {rel}")

    if report.healed:
        console.print(f"[green]✓[/] {folder} is consistent with the archive")
        return 0
    console.print(f"[red]✗[/] {folder} is still missing {len(report.missing_locally)} file(s)")
    return 1


def run_upload(
    root: Path,
    settings: CeremonySettings,
    archive: ArchiveClient,
    folder: str,
    *,
    console: Console | None = None,
) -> int:
    """Upload an attested folder and verify it. Returns an exit code."""
    console = console or Console(stderr=True)
    journal = CeremonyJournal(root)
    local_dir = root / folder

    parsed = ContributionFolder.parse(folder)
    if parsed is None or not local_dir.is_dir():
        console.print(f"[bold red]✗ Error:[/] {local_dir} is not a contribution folder")
        return 1
    attestation_path = local_dir / ATTESTATION_FILE
    if not attestation_path.is_file() and not (local_dir / FINAL_ATTESTATION_FILE).is_file():
        console.print(f"[bold red]✗ Error:[/] {folder} has no attestation; only completed folders are uploaded")
        return 1
    if attestation_path.is_file():
        try:
            attestation = ContributionAttestation.load(attestation_path)
        except (ValueError, KeyError, TypeError) as e:
            print_error(console, PreconditionError(f"Unreadable attestation in {folder}: {e}"))
            return 1
        if attestation.contribution_number != format_ordinal(parsed.ordinal):
            print_error(
                console,
                PreconditionError(
                    f"Attestation in {folder} is for contribution #{attestation.contribution_number}",
                    hint="Upload the folder the attestation was written for.",
                ),
            )
            return 1
    if not archive.is_available():
        print_error(console, ArchiveUnavailableError("Archive not available; nothing uploaded"))
        return 1

    prefix = settings.folder_prefix(folder)
    console.print(f"Uploading {folder} to {archive.describe(prefix)}...")
    try:
        archive.upload_tree(local_dir, prefix)
    except ArchiveError as e:
        journal.record("upload", "FAILED", folder=folder, details={"error": str(e)})
        print_error(console, e)
        return 1
    journal.record("upload", "DONE", folder=folder)
    console.print("[green]✓[/] Upload complete")

    report = ArtifactSyncChecker(root, settings, archive, console=console).check(folder)
    if not report.in_sync:
        console.print(f"[yellow]⚠ {folder} still diverges from the archive[/]")
    return 0


def run_status(
    root: Path,
    settings: CeremonySettings,
    archive: ArchiveClient,
    *,
    output_json: bool = False,
    console: Console | None = None,
) -> int:
    """Show local and archived folders, the latest folder and the next ordinal."""
    console = console or Console(stderr=True)
    sequencer = FolderSequencer(root, settings, archive)

    local = {f.name for f in sequencer.list_local()}
    remote_list = sequencer.list_remote()
    remote = {f.name for f in remote_list} if remote_list is not None else None
    latest = sequencer.latest()
    try:
        next_ordinal: str | None = sequencer.next_ordinal()
    except CeremonyError:
        next_ordinal = None
    final = sequencer.final_folder()

    names = sorted(local | (remote or set()))
    if output_json:
        print(
            json.dumps(
                {
                    "folders": [
                        {"name": n, "local": n in local, "remote": (n in remote) if remote is not None else None}
                        for n in names
                    ],
                    "remote_available": remote is not None,
                    "latest": latest.name if latest else None,
                    "next_ordinal": next_ordinal,
                    "finalized": final.name if final else None,
                },
                indent=2,
            )
        )
        return 0

    table = Table(title="Ceremony folders")
    table.add_column("Folder")
    table.add_column("Local", justify="center")
    table.add_column("Archive", justify="center")
    for name in names:
        in_remote = "?" if remote is None else ("✓" if name in remote else "")
        table.add_row(name, "✓" if name in local else "", in_remote)
    console.print(table)

    if remote is None:
        console.print("[yellow]⚠ Archive not available; showing local folders only[/]")
    console.print(f"Latest: {latest.name if latest else 'none'}")
    if final is not None:
        console.print(f"Finalized in: {final.name}")
    else:
        console.print(f"Next ordinal: {next_ordinal or 'n/a (seed folder missing)'}")
    return 0

