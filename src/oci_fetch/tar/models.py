"""Data models for archive handling."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ArchiveEntry:
    """Regular file to be written into the archive."""

    name: str  # Path relative to the archived root, "/" separated
    path: str  # Path on the local filesystem
    size: int
    mode: int  # Permission bits only
    mtime: float
