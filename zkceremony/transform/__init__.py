"""External transform tool access."""

from __future__ import annotations

from .runner import TransformRunner
from .snarkjs import SnarkjsRunner

__all__ = [
    "SnarkjsRunner",
    "TransformRunner",
]
