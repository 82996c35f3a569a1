"""Journal command implementation."""

from __future__ import annotations

import json
from pathlib import Path

from ..journal import CeremonyJournal, format_entry


def run_journal(root: Path, *, last_n: int | None = 20, output_json: bool = False) -> int:
    """Print recent journal entries, oldest first."""
    entries = CeremonyJournal(root).read(last_n=last_n)
    if output_json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0
    if not entries:
        print("No journal entries.")
        return 0
    for entry in entries:
        print(format_entry(entry))
    return 0
