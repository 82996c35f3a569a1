"""Finalize command implementation."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from ..archive.client import ArchiveClient
from ..ceremony.finalize import FinalizationCeremony
from ..config import CeremonySettings
from ..errors import CeremonyError
from ..transform.runner import TransformRunner
from .common import print_error


def run_finalize(
    root: Path,
    settings: CeremonySettings,
    archive: ArchiveClient,
    runner: TransformRunner,
    *,
    console: Console | None = None,
) -> int:
    """Apply the beacon to the latest contribution. Returns an exit code."""
    console = console or Console(stderr=True)
    console.print("[bold]Starting finalization of the trusted setup ceremony...[/]")

    root.mkdir(parents=True, exist_ok=True)
    ceremony = FinalizationCeremony(root, settings, archive=archive, runner=runner, console=console)
    try:
        result = ceremony.run()
    except CeremonyError as e:
        console.print("\n[bold red]Error finalizing the ceremony[/]")
        print_error(console, e)
        return 1

    if not result.uploaded:
        console.print("[yellow]⚠ Upload to the archive failed or was skipped.[/]")
        console.print(f"  Retry with: zkceremony upload {result.folder.name}", style="dim")
    console.print("\n[bold green]Trusted setup ceremony has been successfully finalized![/]")
    console.print(f"Final contribution is available in: {root / result.folder.name}")
    return 0
