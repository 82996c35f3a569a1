"""
Attestations and the metadata files written into ceremony folders.

Attestation files are created exclusively: once written they are never
overwritten. Writing the contribution attestation is the commit point of
a contribution.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import BeaconParams

ATTESTATION_FILE = "attestation.json"
CONTRIBUTION_NOTE_FILE = "contribution.txt"
FINAL_ATTESTATION_FILE = "FinalAttestationFile.md"
BEACON_METADATA_FILE = "BeaconRandomnessMetadata.json"

_CHUNK = 1024 * 1024


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def hash_file(path: Path) -> str:
    """SHA-256 hex digest of a file's bytes."""
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def verification_key_name(artifact_name: str, suffix: str) -> str:
    stem = artifact_name[: -len(suffix)] if artifact_name.endswith(suffix) else artifact_name
    return f"{stem}_verification_key.json"


def transcript_name(artifact_name: str) -> str:
    return f"{artifact_name}_transcript.txt"


@dataclass(frozen=True)
class ArtifactDigest:
    filename: str
    hash: str

    @classmethod
    def of(cls, path: Path) -> ArtifactDigest:
        return cls(filename=path.name, hash=hash_file(path))

    def to_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "hash": self.hash}


@dataclass(frozen=True)
class ContributionAttestation:
    """Machine-readable record binding a contributor to artifact hashes."""

    contributor: str
    contribution_number: str
    timestamp: str
    files: tuple[ArtifactDigest, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contributor": self.contributor,
            "contributionNumber": self.contribution_number,
            "timestamp": self.timestamp,
            "files": [d.to_dict() for d in self.files],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContributionAttestation:
        return cls(
            contributor=data["contributor"],
            contribution_number=data["contributionNumber"],
            timestamp=data["timestamp"],
            files=tuple(ArtifactDigest(f["filename"], f["hash"]) for f in data.get("files", [])),
        )

    @classmethod
    def load(cls, path: Path) -> ContributionAttestation:
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))


@dataclass(frozen=True)
class BeaconMetadata:
    block_number: str
    block_hash: str
    iterations: int
    timestamp: str

    @classmethod
    def from_params(cls, params: BeaconParams, timestamp: str) -> BeaconMetadata:
        return cls(params.block_number, params.block_hash, params.iterations, timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "blockHash": self.block_hash,
            "iterations": self.iterations,
            "timestamp": self.timestamp,
        }


def write_exclusive(path: Path, content: str) -> Path:
    """Create `path` with `content`; fail if it already exists."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("x", encoding="utf-8") as handle:
        handle.write(content)
    return path


def write_json_exclusive(path: Path, payload: dict[str, Any]) -> Path:
    return write_exclusive(path, json.dumps(payload, indent=2) + "\n")


def transcript_text(artifact_name: str, contributor: str, timestamp: str) -> str:
    return f"Contribution to {artifact_name} by {contributor}\nTimestamp: {timestamp}\n"


def contribution_note_text(contributor: str, timestamp: str) -> str:
    return (
        f"Contribution by {contributor}\n"
        f"Timestamp: {timestamp}\n\n"
        "Entropy was generated using a secure method and has been deleted.\n"
    )


def render_final_attestation(beacon: BeaconParams, timestamp: str, digests: list[ArtifactDigest]) -> str:
    """Human-readable attestation for the finalization folder."""
    hash_lines = "\n".join(f"- **{d.filename}**: `{d.hash}`" for d in digests)
    return f"""# Final Trusted Setup Ceremony Attestation

## Ceremony Information

- **Finalization Date**: {timestamp}
- **Ethereum Block Number**: {beacon.block_number}
- **Ethereum Block Hash**: {beacon.block_hash}
- **Beacon Iterations**: {beacon.iterations}

## Final Contribution File Hashes

The following SHA256 hashes represent the final parameter files after applying the random beacon:

{hash_lines}

## Ceremony Verification

The final parameters were verified against the corresponding circuit constraint files.
The verification keys have been exported and are available in the same folder.

## Attestation

This attestation file was automatically generated as part of the trusted setup ceremony finalization.
The ceremony was finalized by applying a random beacon from Ethereum block #{beacon.block_number}.
"""
