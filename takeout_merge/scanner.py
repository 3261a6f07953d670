"""Scanner: walk a working directory and collect every plain file path."""
from pathlib import Path
from typing import Set
import os


def _raise(error: OSError):
    raise error


def scan_files(source) -> Set[Path]:
    """Return the set of all files under `source`, at any depth.

    Directories are descended into but never returned, so empty directories
    contribute nothing. Any directory that cannot be listed raises OSError.
    """
    p = Path(source)
    if not p.exists():
        raise FileNotFoundError(f"Source path not found: {source}")
    if not p.is_dir():
        raise NotADirectoryError(f"Source path is not a directory: {source}")

    files: Set[Path] = set()
    for dirpath, _dirnames, filenames in os.walk(p, onerror=_raise):
        for name in filenames:
            fp = Path(dirpath) / name
            if fp.is_file():
                files.add(fp)
    return files
