"""
Entropy mixing for contributions.

A contribution's base seed concatenates, in order:
1. 128 bytes from the `secrets` CSPRNG, hex-encoded
2. a best-effort sample of the OS randomness device (three strategies,
   degrading to an empty fragment)
3. optional hidden keyboard input from the operator

Each artifact gets its own secret: SHA-512 over seed + artifact filename.
Seeds live in memory for one run only. They are never logged, printed or
written to disk, and their repr is redacted.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import subprocess
from pathlib import Path
from typing import Callable

import click

logger = logging.getLogger(__name__)

SECURE_BYTES = 128
SYSTEM_SAMPLE_BYTES = 16
RANDOM_DEVICE = Path("/dev/urandom")


class EntropySeed:
    """Base seed for one ceremony run."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    @property
    def value(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "EntropySeed(<redacted>)"

    __str__ = __repr__


def derive(seed: EntropySeed, artifact_name: str) -> str:
    """Per-artifact secret: SHA-512 hex of the seed with the filename appended."""
    return hashlib.sha512((seed.value + artifact_name).encode("utf-8")).hexdigest()


def _sample_device(device: Path = RANDOM_DEVICE) -> str:
    with device.open("rb") as f:
        data = f.read(SYSTEM_SAMPLE_BYTES)
    if len(data) != SYSTEM_SAMPLE_BYTES:
        raise OSError(f"short read from {device}")
    return data.hex().upper()


def _sample_openssl() -> str:
    result = subprocess.run(
        ["openssl", "rand", "-hex", str(SYSTEM_SAMPLE_BYTES)],
        capture_output=True,
        text=True,
        timeout=10,
        check=True,
    )
    return result.stdout.strip()


def _sample_head() -> str:
    result = subprocess.run(
        ["head", "-c", str(SYSTEM_SAMPLE_BYTES), "/dev/random"],
        capture_output=True,
        timeout=10,
        check=True,
    )
    if len(result.stdout) != SYSTEM_SAMPLE_BYTES:
        raise OSError("short read from /dev/random")
    return result.stdout.hex()


DEFAULT_SYSTEM_SAMPLERS: tuple[Callable[[], str], ...] = (_sample_device, _sample_openssl, _sample_head)


class EntropyMixer:
    """
    Collect a base seed from independent sources.

    The samplers and prompt functions are injectable; defaults read the
    OS randomness device and ask through click with echo disabled.
    """

    def __init__(
        self,
        *,
        interactive: bool | None = None,
        system_samplers: tuple[Callable[[], str], ...] = DEFAULT_SYSTEM_SAMPLERS,
        confirm: Callable[[str], bool] | None = None,
        prompt: Callable[[str], str] | None = None,
    ) -> None:
        # interactive: True = always ask for keyboard input, False = never,
        # None = ask the operator whether to add it.
        self.interactive = interactive
        self.system_samplers = system_samplers
        self._confirm = confirm or (lambda text: click.confirm(text, default=False, err=True))
        self._prompt = prompt or (
            lambda text: click.prompt(text, hide_input=True, default="", show_default=False, err=True)
        )

    def secure_fragment(self) -> str:
        return secrets.token_bytes(SECURE_BYTES).hex()

    def system_fragment(self) -> str:
        """Sample OS randomness; empty if every strategy fails."""
        for sampler in self.system_samplers:
            try:
                value = sampler()
            except (OSError, subprocess.SubprocessError) as e:
                logger.debug("System entropy strategy %s failed: %s", getattr(sampler, "__name__", sampler), e)
                continue
            if value:
                logger.info("System entropy added (%s)", getattr(sampler, "__name__", "sampler"))
                return value
        logger.warning("Could not sample system entropy; continuing without it")
        return ""

    def interactive_fragment(self) -> str:
        if self.interactive is False:
            return ""
        if self.interactive is None and not self._confirm(
            "Would you like to add additional entropy by typing random keys?"
        ):
            return ""
        value = self._prompt("Please mash your keyboard randomly (hidden input)")
        logger.info("Additional entropy received")
        return value

    def collect(self) -> EntropySeed:
        return EntropySeed(self.secure_fragment() + self.system_fragment() + self.interactive_fragment())

    @staticmethod
    def derive(seed: EntropySeed, artifact_name: str) -> str:
        return derive(seed, artifact_name)
