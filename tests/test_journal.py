"""Tests for the ceremony journal."""

from __future__ import annotations

from pathlib import Path

from zkceremony.journal import CeremonyJournal, JournalEntry, format_entry


def test_record_and_read(tmp_path: Path):
    journal = CeremonyJournal(tmp_path)
    journal.record("contribute", "ALLOCATING", details={"contributor": "alice"})
    journal.record("contribute", "TRANSFORMING", folder="0001_alice")

    entries = journal.read()
    assert [e.state for e in entries] == ["ALLOCATING", "TRANSFORMING"]
    assert entries[0].folder is None
    assert entries[0].details == {"contributor": "alice"}
    assert entries[1].folder == "0001_alice"
    assert journal.path == tmp_path / ".zkceremony" / "journal.log"


def test_read_last_n(tmp_path: Path):
    journal = CeremonyJournal(tmp_path)
    for state in ("ALLOCATING", "TRANSFORMING", "ATTESTING", "DONE"):
        journal.record("contribute", state, folder="0001_alice")

    assert [e.state for e in journal.read(last_n=2)] == ["ATTESTING", "DONE"]
    assert journal.read(last_n=0) == []


def test_read_skips_malformed_lines(tmp_path: Path):
    journal = CeremonyJournal(tmp_path)
    journal.record("upload", "DONE", folder="0001_alice")
    with journal.path.open("a", encoding="utf-8") as f:
        f.write("{not json\n")
        f.write('{"timestamp": "x"}\n')
    journal.record("upload", "FAILED", folder="0002_bob")

    assert [e.folder for e in journal.read()] == ["0001_alice", "0002_bob"]


def test_read_without_journal(tmp_path: Path):
    assert CeremonyJournal(tmp_path).read() == []


def test_format_entry():
    entry = JournalEntry(
        timestamp="2025-03-14T12:00:00+00:00",
        operation="finalize",
        folder="0003_final",
        state="FAILED",
        details={"stage": "BEACON"},
    )
    assert format_entry(entry) == "[2025-03-14T12:00:00+00:00] finalize FAILED (0003_final)\n  stage: BEACON"
