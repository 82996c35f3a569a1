"""
Remote archive access.

Core components depend on the ArchiveClient protocol only. Adapters:
- AwsCliArchiveClient: shells out to the `aws` CLI (S3-compatible stores)
- LocalArchiveClient: mirrors keys onto a directory
"""

from __future__ import annotations

from .aws_cli import AwsCliArchiveClient
from .client import ArchiveClient, LocalArchiveClient, RemoteEntry

__all__ = [
    "ArchiveClient",
    "AwsCliArchiveClient",
    "LocalArchiveClient",
    "RemoteEntry",
]
