"""Tests for beacon finalization."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from rich.console import Console

from zkceremony.archive import LocalArchiveClient
from zkceremony.ceremony import FinalizationCeremony, FinalizationStage, match_constraint_file
from zkceremony.config import CeremonySettings
from zkceremony.errors import PreconditionError, TransformError
from zkceremony.journal import CeremonyJournal


FIXED_TIME = "2025-03-20T09:30:00Z"


@pytest.fixture
def make_ceremony(root: Path, settings: CeremonySettings, runner, console: Console):
    def _make(archive) -> FinalizationCeremony:
        return FinalizationCeremony(
            root,
            settings,
            archive=archive,
            runner=runner,
            console=console,
            clock=lambda: FIXED_TIME,
        )

    return _make


# -----------------------------------------------------------------------------
# Constraint matching
# -----------------------------------------------------------------------------


def test_match_prefers_exact_stem():
    candidates = ["circuit_v2.r1cs", "circuit.r1cs"]
    assert match_constraint_file("circuit", candidates, ".r1cs") == "circuit.r1cs"


def test_match_falls_back_to_case_insensitive_substring():
    assert match_constraint_file("Multiplier", ["other.r1cs", "multiplier_v2.r1cs"], ".r1cs") == "multiplier_v2.r1cs"
    assert match_constraint_file("withdraw_final", ["Withdraw.r1cs"], ".r1cs") == "Withdraw.r1cs"


def test_match_returns_none_without_candidates():
    assert match_constraint_file("circuit", ["other.r1cs"], ".r1cs") is None
    assert match_constraint_file("circuit", [], ".r1cs") is None


# -----------------------------------------------------------------------------
# Finalization runs
# -----------------------------------------------------------------------------


def test_fetches_archived_latest_before_finalizing(
    make_ceremony,
    root: Path,
    archive: LocalArchiveClient,
    ceremony_archive: Path,
    put_remote,
    put_local,
    runner,
):
    put_local("0000_initial", {"circuit.zkey": b"seed"})
    put_remote("0001_alice", {"circuit.zkey": b"alice", "attestation.json": b"{}"})

    result = make_ceremony(archive).run()

    assert result.source.name == "0001_alice"
    assert result.folder.name == "0002_final"
    assert (root / "0001_alice" / "circuit.zkey").read_bytes() == b"alice"

    final_dir = root / "0002_final"
    assert (final_dir / "circuit.zkey").read_bytes() == b"alice|beacon"
    assert (final_dir / "circuit_verification_key.json").exists()
    assert (final_dir / "FinalAttestationFile.md").exists()
    assert [d.filename for d in result.digests] == ["circuit.zkey"]

    beacon_call = runner.calls_of("beacon")[0]
    assert beacon_call[3] == "81d94f995b977ba0ecff48f8a6687aeb90025f4142743d7135bcf9751195541d"
    assert beacon_call[4] == "10"
    assert beacon_call[5] == "Final Beacon from Ethereum block #22038000"

    verify_call = runner.calls_of("verify")[0]
    assert verify_call[1] == str(root / "r1cs" / "circuit.r1cs")
    assert verify_call[2] == str(root / "powersOfTau28_hez_final_18.ptau")


def test_fails_when_latest_cannot_be_fetched(
    make_ceremony,
    root: Path,
    archive: LocalArchiveClient,
    ceremony_archive: Path,
    settings: CeremonySettings,
    put_local,
):
    put_local("0000_initial", {"circuit.zkey": b"seed"})
    # Listed in the archive but holding no artifacts.
    (ceremony_archive / settings.folder_prefix("0001_alice")).mkdir(parents=True)

    ceremony = make_ceremony(archive)
    with pytest.raises(PreconditionError, match="0001_alice"):
        ceremony.run()

    assert ceremony.stage == FinalizationStage.FAILED
    assert not (root / "0002_final").exists()


def test_partial_constraint_match_is_used(
    make_ceremony,
    root: Path,
    archive: LocalArchiveClient,
    settings: CeremonySettings,
    archive_dir: Path,
    put_remote,
    console: Console,
    runner,
):
    put_remote(settings.seed_folder, {"Multiplier.zkey": b"seed"})
    put_remote(settings.constraint_folder, {"multiplier_v2.r1cs": b"constraints"})
    put_remote("0001_alice", {"Multiplier.zkey": b"alice"})
    (archive_dir / settings.ptau_key).write_bytes(b"ptau")

    make_ceremony(archive).run()

    assert runner.calls_of("verify")[0][1] == str(root / "r1cs" / "multiplier_v2.r1cs")
    assert "partial match multiplier_v2.r1cs" in console.file.getvalue()


def test_missing_constraint_file_is_fatal(
    make_ceremony,
    archive: LocalArchiveClient,
    settings: CeremonySettings,
    archive_dir: Path,
    put_remote,
):
    put_remote(settings.seed_folder, {"circuit.zkey": b"seed"})
    put_remote(settings.constraint_folder, {"other.r1cs": b"constraints"})
    put_remote("0001_alice", {"circuit.zkey": b"alice"})
    (archive_dir / settings.ptau_key).write_bytes(b"ptau")

    with pytest.raises(PreconditionError) as exc_info:
        make_ceremony(archive).run()
    assert "other.r1cs" in exc_info.value.hint


def test_beacon_metadata(make_ceremony, root: Path, archive: LocalArchiveClient, ceremony_archive, put_remote):
    put_remote("0001_alice", {"circuit.zkey": b"alice"})

    result = make_ceremony(archive).run()

    metadata = json.loads(result.metadata_path.read_text())
    assert metadata == {
        "blockNumber": "22038000",
        "blockHash": "0x81d94f995b977ba0ecff48f8a6687aeb90025f4142743d7135bcf9751195541d",
        "iterations": 10,
        "timestamp": FIXED_TIME,
    }
    attestation = result.attestation_path.read_text()
    assert "22038000" in attestation
    assert f"`{result.digests[0].hash}`" in attestation


def test_finalization_is_uploaded(
    make_ceremony,
    archive: LocalArchiveClient,
    archive_dir: Path,
    settings: CeremonySettings,
    ceremony_archive,
    put_remote,
):
    put_remote("0001_alice", {"circuit.zkey": b"alice"})

    result = make_ceremony(archive).run()

    assert result.uploaded
    assert result.sync_report is not None and result.sync_report.healed
    assert (archive_dir / settings.folder_prefix("0002_final") / "FinalAttestationFile.md").exists()


def test_upload_failure_only_warns(
    make_ceremony,
    root: Path,
    failing_upload_archive,
    ceremony_archive,
    put_remote,
    console: Console,
):
    put_remote("0001_alice", {"circuit.zkey": b"alice"})

    result = make_ceremony(failing_upload_archive).run()

    assert not result.uploaded
    assert result.attestation_path.exists()
    assert "Upload failed" in console.file.getvalue()
    assert CeremonyJournal(root).read()[-1].state == "DONE"


def test_refuses_second_finalization(make_ceremony, archive: LocalArchiveClient, ceremony_archive, put_remote):
    put_remote("0001_alice", {"circuit.zkey": b"alice"})
    put_remote("0002_final", {"circuit.zkey": b"final"})

    with pytest.raises(PreconditionError, match="already finalized"):
        make_ceremony(archive).run()


def test_requires_a_contribution(make_ceremony, archive: LocalArchiveClient, ceremony_archive):
    with pytest.raises(PreconditionError, match="No contributions found"):
        make_ceremony(archive).run()


def test_failure_is_journaled_with_its_stage(make_ceremony, root: Path, archive: LocalArchiveClient, ceremony_archive):
    ceremony = make_ceremony(archive)
    with pytest.raises(PreconditionError):
        ceremony.run()

    assert ceremony.stage == FinalizationStage.FAILED
    entries = CeremonyJournal(root).read()
    assert [e.state for e in entries] == ["PREPARING", "FAILED"]
    assert entries[-1].details["stage"] == "PREPARING"
    assert "No contributions found" in entries[-1].details["error"]


def test_verification_failure_aborts(make_ceremony, root: Path, archive: LocalArchiveClient, ceremony_archive, put_remote, runner):
    put_remote("0001_alice", {"circuit.zkey": b"alice"})
    runner.fail_on = "verify"

    with pytest.raises(TransformError):
        make_ceremony(archive).run()

    assert not (root / "0002_final" / "FinalAttestationFile.md").exists()
    failed = CeremonyJournal(root).read()[-1]
    assert failed.state == "FAILED"
    assert failed.details["stage"] == "BEACON"
