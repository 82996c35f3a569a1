"""
Archive adapter backed by the `aws` command-line tool.

Commands are built as argument lists and run without a shell. Credentials
travel in the child environment only; they never appear on a command line
or in logs.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from ..config import CeremonyConfig
from ..errors import ArchiveError, ArchiveUnavailableError
from .client import RemoteEntry

logger = logging.getLogger(__name__)

INSTALL_HINT = "Install the AWS CLI (pip install awscli) and make sure `aws` is on your PATH."


def parse_ls_output(output: str, prefix: str, *, recursive: bool) -> list[RemoteEntry]:
    """
    Parse `aws s3 ls` output into entries carrying full keys.

    Recursive rows print the full key; non-recursive rows print names
    relative to the listed "directory" and common prefixes as `PRE name/`.
    """
    if prefix.endswith("/") or not prefix:
        base = prefix
    else:
        base = prefix.rsplit("/", 1)[0] + "/" if "/" in prefix else ""

    entries: list[RemoteEntry] = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("PRE "):
            name = line[len("PRE ") :].strip()
            entries.append(RemoteEntry(key=base + name, is_prefix=True))
            continue
        parts = line.split(None, 3)
        if len(parts) < 4:
            logger.debug("Skipping unparseable listing row: %r", raw)
            continue
        _date, _time, size, name = parts
        try:
            size_value = int(size)
        except ValueError:
            logger.debug("Skipping listing row with non-numeric size: %r", raw)
            continue
        key = name if recursive else base + name
        entries.append(RemoteEntry(key=key, size=size_value))
    return entries


class AwsCliArchiveClient:
    """ArchiveClient over `aws s3 ls` / `aws s3 cp`."""

    def __init__(self, config: CeremonyConfig, *, executable: str = "aws") -> None:
        self.config = config
        self.executable = executable
        self._available: bool | None = None

    def _url(self, key: str) -> str:
        return f"s3://{self.config.bucket}/{key.lstrip('/')}"

    def describe(self, key: str) -> str:
        return self._url(key)

    def is_available(self) -> bool:
        if self._available is None:
            self._available = self._probe()
        return self._available

    def _probe(self) -> bool:
        if shutil.which(self.executable) is None:
            return False
        try:
            result = subprocess.run(
                [self.executable, "--version"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return result.returncode == 0

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        if not self.is_available():
            raise ArchiveUnavailableError(
                "AWS CLI not available or not compatible with the current environment",
                hint=INSTALL_HINT,
            )
        cmd = [self.executable, *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                env={**os.environ, **self.config.archive_env()},
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise ArchiveUnavailableError(f"Cannot execute {self.executable}: {e}", hint=INSTALL_HINT) from e

    @staticmethod
    def _fail(action: str, result: subprocess.CompletedProcess[str]) -> ArchiveError:
        detail = (result.stderr or "").strip().splitlines()
        reason = detail[-1] if detail else f"exit code {result.returncode}"
        return ArchiveError(
            f"Archive {action} failed: {reason}",
            hint="Check the AWS credentials, region and endpoint in your environment.",
        )

    def list(self, prefix: str, *, recursive: bool = False) -> list[RemoteEntry]:
        args = ["s3", "ls", self._url(prefix)]
        if recursive:
            args.append("--recursive")
        result = self._run(args)
        if result.returncode != 0:
            # `aws s3 ls` exits 1 with no output when nothing matches.
            if result.returncode == 1 and not result.stdout.strip() and not result.stderr.strip():
                return []
            raise self._fail(f"listing of {prefix}", result)
        return parse_ls_output(result.stdout, prefix, recursive=recursive)

    def download(self, key: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        result = self._run(["s3", "cp", self._url(key), str(dest), "--only-show-errors"])
        if result.returncode != 0:
            raise self._fail(f"download of {key}", result)

    def download_tree(self, prefix: str, dest_dir: Path) -> None:
        dest_dir.mkdir(parents=True, exist_ok=True)
        result = self._run(
            ["s3", "cp", self._url(prefix), str(dest_dir), "--recursive", "--only-show-errors"]
        )
        if result.returncode != 0:
            raise self._fail(f"download of {prefix}", result)

    def upload_tree(self, src_dir: Path, prefix: str) -> None:
        if not src_dir.is_dir():
            raise ArchiveError(f"Local folder does not exist: {src_dir}")
        result = self._run(
            ["s3", "cp", str(src_dir), self._url(prefix), "--recursive", "--only-show-errors"]
        )
        if result.returncode != 0:
            raise self._fail(f"upload of {src_dir.name}", result)
