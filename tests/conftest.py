"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Callable

import pytest
from rich.console import Console

from zkceremony.archive import LocalArchiveClient
from zkceremony.config import CeremonySettings
from zkceremony.entropy import EntropyMixer
from zkceremony.errors import ArchiveError, TransformError


# -----------------------------------------------------------------------------
# Test doubles
# -----------------------------------------------------------------------------


class MockRunner:
    """Recording TransformRunner that writes deterministic outputs."""

    def __init__(self, *, available: bool = True, fail_on: str | None = None):
        self.available = available
        self.fail_on = fail_on
        self.calls: list[tuple[str, ...]] = []
        self.entropies: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise TransformError(f"snarkjs zkey {operation} exited with code 1")

    def is_available(self) -> bool:
        return self.available

    def contribute(self, previous: Path, output: Path, entropy: str, name: str) -> None:
        self.calls.append(("contribute", str(previous), str(output), name))
        self.entropies.append(entropy)
        self._maybe_fail("contribute")
        output.write_bytes(previous.read_bytes() + b"|" + name.encode())

    def apply_beacon(self, source: Path, output: Path, beacon_hex: str, iterations: int, name: str) -> None:
        self.calls.append(("beacon", str(source), str(output), beacon_hex, str(iterations), name))
        self._maybe_fail("beacon")
        output.write_bytes(source.read_bytes() + b"|beacon")

    def verify(self, constraints: Path, ptau: Path, artifact: Path) -> None:
        self.calls.append(("verify", str(constraints), str(ptau), str(artifact)))
        self._maybe_fail("verify")

    def export_verification_key(self, artifact: Path, output: Path) -> None:
        self.calls.append(("export", str(artifact), str(output)))
        self._maybe_fail("export")
        output.write_text(json.dumps({"artifact": artifact.name}))

    def calls_of(self, operation: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == operation]


class FailingUploadArchive(LocalArchiveClient):
    """Directory archive whose uploads always fail."""

    def upload_tree(self, src_dir: Path, prefix: str) -> None:
        raise ArchiveError(f"Archive upload of {src_dir.name} failed: AccessDenied")


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def settings() -> CeremonySettings:
    return CeremonySettings()


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Local contributions root."""
    path = tmp_path / "contributions"
    path.mkdir()
    return path


@pytest.fixture
def archive_dir(tmp_path: Path) -> Path:
    """Directory standing in for the bucket."""
    path = tmp_path / "bucket"
    path.mkdir()
    return path


@pytest.fixture
def archive(archive_dir: Path) -> LocalArchiveClient:
    return LocalArchiveClient(archive_dir)


@pytest.fixture
def offline_archive(archive_dir: Path) -> LocalArchiveClient:
    return LocalArchiveClient(archive_dir, available=False)


@pytest.fixture
def console() -> Console:
    """Console writing into a buffer; read it with console.file.getvalue()."""
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner()


@pytest.fixture
def mixer() -> EntropyMixer:
    return EntropyMixer(interactive=False, system_samplers=(lambda: "ABCDEF0123456789",))


@pytest.fixture
def put_remote(archive_dir: Path, settings: CeremonySettings) -> Callable[..., Path]:
    """Write files under a folder's archive prefix."""

    def _put(folder: str, files: dict[str, bytes]) -> Path:
        base = archive_dir / settings.folder_prefix(folder)
        base.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            target = base / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        return base

    return _put


@pytest.fixture
def put_local(root: Path) -> Callable[..., Path]:
    """Write files into a local contribution folder."""

    def _put(folder: str, files: dict[str, bytes]) -> Path:
        base = root / folder
        base.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            target = base / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        return base

    return _put


@pytest.fixture
def ceremony_archive(
    archive_dir: Path,
    settings: CeremonySettings,
    put_remote: Callable[..., Path],
) -> Path:
    """Archive holding the seed folder, constraint systems and the ptau file."""
    put_remote(settings.seed_folder, {"circuit.zkey": b"seed"})
    put_remote(settings.constraint_folder, {"circuit.r1cs": b"constraints"})
    (archive_dir / settings.ptau_key).write_bytes(b"ptau")
    return archive_dir


@pytest.fixture
def failing_upload_archive(archive_dir: Path) -> FailingUploadArchive:
    return FailingUploadArchive(archive_dir)
