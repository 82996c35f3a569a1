"""
Ceremony journal.

An append-only JSON Lines log of ceremony state transitions, kept under
<root>/.zkceremony/journal.log. It exists so that a partial folder left
behind by a failed run can be traced back to the stage that failed.

The journal lives outside every contribution folder and is never
archived. Entropy never reaches it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

JOURNAL_DIR = ".zkceremony"
JOURNAL_FILE = "journal.log"


@dataclass
class JournalEntry:
    """A single journal entry."""

    timestamp: str
    operation: str
    folder: str | None
    state: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "folder": self.folder,
            "state": self.state,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalEntry:
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            folder=data.get("folder"),
            state=data["state"],
            details=data.get("details", {}),
        )


class CeremonyJournal:
    def __init__(self, root: Path) -> None:
        self.path = root / JOURNAL_DIR / JOURNAL_FILE

    def record(
        self,
        operation: str,
        state: str,
        *,
        folder: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> JournalEntry:
        """
        Append an entry.

        Args:
            operation: "contribute", "finalize", "upload", ...
            state: Ceremony state entered (e.g. "TRANSFORMING", "FAILED")
            folder: Folder the operation works on, once known
            details: Extra context; must never contain secrets

        Returns:
            The appended entry
        """
        entry = JournalEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            operation=operation,
            folder=folder,
            state=state,
            details=details or {},
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict()) + "\n")
        return entry

    def read(self, last_n: int | None = None) -> list[JournalEntry]:
        """Entries oldest first; malformed lines are skipped."""
        if not self.path.exists():
            return []

        entries: list[JournalEntry] = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(JournalEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError):
                    continue

        if last_n is not None:
            return entries[-last_n:] if last_n > 0 else []
        return entries


def format_entry(entry: JournalEntry) -> str:
    """Format a journal entry for display."""
    head = f"[{entry.timestamp}] {entry.operation} {entry.state}"
    if entry.folder:
        head += f" ({entry.folder})"
    lines = [head]
    for key, value in entry.details.items():
        lines.append(f"  {key}: {value}")
    return "\n".join(lines)
