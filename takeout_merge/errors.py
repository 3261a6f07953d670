"""Exception types raised by the takeout merge pipeline."""
from __future__ import annotations

from pathlib import Path


class TakeoutMergeError(Exception):
    """Base class for all pipeline errors."""


class ArchiveError(TakeoutMergeError):
    """The archive could not be opened or its working directory created."""


class ConfigError(TakeoutMergeError):
    """The settings file is unreadable or holds an invalid value."""


class SidecarParseError(TakeoutMergeError):
    """A sidecar file is not valid JSON or has the wrong shape."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class MetadataWriteError(TakeoutMergeError):
    """Embedding metadata into an image failed."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path
