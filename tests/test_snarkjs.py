"""Tests for the snarkjs transform adapter."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest

from zkceremony.errors import TransformError
from zkceremony.transform import SnarkjsRunner, TransformRunner
from zkceremony.transform import snarkjs


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[list[str], dict[str, Any]]]:
    recorded: list[tuple[list[str], dict[str, Any]]] = []

    def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        recorded.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(snarkjs.subprocess, "run", fake_run)
    return recorded


def test_runner_satisfies_protocol():
    assert isinstance(SnarkjsRunner(), TransformRunner)


def test_contribute_passes_entropy_on_stdin(calls, tmp_path: Path):
    prev, out = tmp_path / "prev.zkey", tmp_path / "out.zkey"
    SnarkjsRunner().contribute(prev, out, "deadbeef" * 16, "Contribution #0001 from alice")

    cmd, kwargs = calls[0]
    assert cmd == ["snarkjs", "zkey", "contribute", "-v", str(prev), str(out), "--name=Contribution #0001 from alice"]
    assert kwargs["input"] == "deadbeef" * 16 + "\n"
    assert not any("deadbeef" in arg for arg in cmd)


def test_apply_beacon_arguments(calls, tmp_path: Path):
    SnarkjsRunner("/opt/bin/snarkjs").apply_beacon(
        tmp_path / "in.zkey", tmp_path / "out.zkey", "81d94f99", 10, "Final Beacon"
    )
    cmd, kwargs = calls[0]
    assert cmd == [
        "/opt/bin/snarkjs",
        "zkey",
        "beacon",
        str(tmp_path / "in.zkey"),
        str(tmp_path / "out.zkey"),
        "81d94f99",
        "10",
        "-n=Final Beacon",
    ]
    assert kwargs["input"] is None


def test_verify_and_export_arguments(calls, tmp_path: Path):
    runner = SnarkjsRunner()
    runner.verify(tmp_path / "c.r1cs", tmp_path / "p.ptau", tmp_path / "c.zkey")
    runner.export_verification_key(tmp_path / "c.zkey", tmp_path / "c_verification_key.json")

    assert calls[0][0][1:3] == ["zkey", "verify"]
    assert calls[1][0][1:4] == ["zkey", "export", "verificationkey"]


def test_non_zero_exit_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(snarkjs.subprocess, "run", lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 1))
    with pytest.raises(TransformError, match="exited with code 1") as exc_info:
        SnarkjsRunner().verify(tmp_path / "c.r1cs", tmp_path / "p.ptau", tmp_path / "c.zkey")
    assert exc_info.value.hint


def test_unexecutable_tool_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    def boom(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(snarkjs.subprocess, "run", boom)
    with pytest.raises(TransformError, match="Cannot execute"):
        SnarkjsRunner().export_verification_key(tmp_path / "c.zkey", tmp_path / "vk.json")


def test_is_available(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(snarkjs.shutil, "which", lambda name: None)
    assert not SnarkjsRunner().is_available()
