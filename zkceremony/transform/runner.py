"""
Transform runner protocol.

The cryptographic work (contribution, beacon, verification, key export)
belongs to an external tool. The ceremony only hands it file paths, an
entropy string and display names, and treats any failure as fatal.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class TransformRunner(Protocol):
    def is_available(self) -> bool:
        ...

    def contribute(self, previous: Path, output: Path, entropy: str, name: str) -> None:
        """Produce `output` from `previous` mixing in `entropy`."""
        ...

    def apply_beacon(self, source: Path, output: Path, beacon_hex: str, iterations: int, name: str) -> None:
        """Produce `output` from `source` with public randomness applied."""
        ...

    def verify(self, constraints: Path, ptau: Path, artifact: Path) -> None:
        """Verify `artifact` against its constraint system and powers of tau."""
        ...

    def export_verification_key(self, artifact: Path, output: Path) -> None:
        """Write the verification key of `artifact` to `output` as JSON."""
        ...
