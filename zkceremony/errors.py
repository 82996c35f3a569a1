"""
Exception taxonomy for ceremony runs.

Every failure the operator can act on is a CeremonyError carrying an
optional remediation hint. Divergence between the local tree and the
archive is not an error: it is reported through SyncReport.
"""

from __future__ import annotations


class CeremonyError(RuntimeError):
    """Base class for failures that abort a ceremony command."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(CeremonyError):
    """Required configuration is missing or malformed."""


class PreconditionError(CeremonyError):
    """Ceremony inputs (seed folder, prior contribution, ...) are absent."""


class ArchiveUnavailableError(CeremonyError):
    """The archive collaborator is not installed or cannot be executed."""


class ArchiveError(CeremonyError):
    """An archive operation ran but failed."""


class TransformError(CeremonyError):
    """The transform tool is missing or returned a non-zero exit code."""
