"""Contribute command implementation."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from ..archive.aws_cli import INSTALL_HINT
from ..archive.client import ArchiveClient
from ..ceremony.contribute import ContributionCeremony
from ..config import CeremonySettings
from ..entropy import EntropyMixer
from ..errors import CeremonyError
from ..transform.runner import TransformRunner
from .common import print_error


def run_contribute(
    root: Path,
    settings: CeremonySettings,
    archive: ArchiveClient,
    runner: TransformRunner,
    *,
    contributor: str,
    extra_entropy: bool | None = None,
    console: Console | None = None,
) -> int:
    """Run one contribution.

    Args:
        root: Local contributions root
        settings: Ceremony settings
        archive: Archive client (must be available: the result is uploaded)
        runner: Transform tool adapter
        contributor: Contributor identity (GitHub username)
        extra_entropy: Ask for keyboard entropy (None = ask whether to)

    Returns:
        Exit code (0 = contribution attested and uploaded)
    """
    console = console or Console(stderr=True)

    if not archive.is_available():
        console.print("[bold red]✗ Error:[/] The archive CLI is not installed or not in your PATH")
        console.print(f"  {INSTALL_HINT}", style="dim")
        return 1

    root.mkdir(parents=True, exist_ok=True)
    ceremony = ContributionCeremony(
        root,
        settings,
        archive=archive,
        runner=runner,
        mixer=EntropyMixer(interactive=extra_entropy),
        console=console,
    )
    try:
        result = ceremony.run(contributor)
    except CeremonyError as e:
        print_error(console, e)
        return 1

    console.print(f"\n[bold green]All contributions complete![/] Your contribution is in {root / result.folder.name}")
    report = result.sync_report
    if report is not None and not report.in_sync:
        console.print(
            f"[yellow]⚠ Archive divergence for {result.folder.name}:[/] "
            f"{len(report.missing_locally)} missing locally, {len(report.missing_remotely)} missing remotely"
        )
    console.print("\nPlease commit and push this folder to the repository.")
    console.print(
        "[yellow]⚠ IMPORTANT:[/] entropy values were not saved anywhere and are gone from memory.",
    )
    return 0
