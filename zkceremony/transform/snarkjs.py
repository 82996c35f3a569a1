"""TransformRunner adapter for the `snarkjs` command-line tool."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from ..errors import TransformError

logger = logging.getLogger(__name__)

INSTALL_HINT = "Install snarkjs (npm install -g snarkjs) and make sure it is on your PATH."


class SnarkjsRunner:
    """
    Run snarkjs zkey subcommands.

    Output is inherited so the operator sees the tool's own progress.
    Entropy is written to the contribute subcommand's stdin, never to argv.
    """

    def __init__(self, executable: str = "snarkjs") -> None:
        self.executable = executable

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def _run(self, args: list[str], *, stdin: str | None = None) -> None:
        cmd = [self.executable, *args]
        # argv never carries secrets, so it is safe to log.
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, input=stdin, text=True)
        except OSError as e:
            raise TransformError(f"Cannot execute {self.executable}: {e}", hint=INSTALL_HINT) from e
        if result.returncode != 0:
            raise TransformError(
                f"{self.executable} {' '.join(args[:2])} exited with code {result.returncode}",
                hint="The ceremony was aborted; inspect or delete the partial folder before retrying.",
            )

    def contribute(self, previous: Path, output: Path, entropy: str, name: str) -> None:
        self._run(
            ["zkey", "contribute", "-v", str(previous), str(output), f"--name={name}"],
            stdin=entropy + "\n",
        )

    def apply_beacon(self, source: Path, output: Path, beacon_hex: str, iterations: int, name: str) -> None:
        self._run(
            ["zkey", "beacon", str(source), str(output), beacon_hex, str(iterations), f"-n={name}"]
        )

    def verify(self, constraints: Path, ptau: Path, artifact: Path) -> None:
        self._run(["zkey", "verify", str(constraints), str(ptau), str(artifact)])

    def export_verification_key(self, artifact: Path, output: Path) -> None:
        self._run(["zkey", "export", "verificationkey", str(artifact), str(output)])
