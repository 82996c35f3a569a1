"""Helpers shared by command implementations."""

from __future__ import annotations

from rich.console import Console

from ..errors import CeremonyError


def print_error(console: Console, error: CeremonyError) -> None:
    console.print(f"[bold red]✗ Error:[/] {error}")
    if error.hint:
        console.print(f"  {error.hint}", style="dim")
