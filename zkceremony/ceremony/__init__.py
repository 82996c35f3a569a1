"""
Ceremony orchestrations.

- ContributionCeremony: one participant's step, producing a new folder
- FinalizationCeremony: beacon application closing the ceremony
"""

from __future__ import annotations

from .contribute import ContributionCeremony, ContributionResult, ContributionState
from .finalize import FinalizationCeremony, FinalizationResult, FinalizationStage, match_constraint_file

__all__ = [
    "ContributionCeremony",
    "ContributionResult",
    "ContributionState",
    "FinalizationCeremony",
    "FinalizationResult",
    "FinalizationStage",
    "match_constraint_file",
]
