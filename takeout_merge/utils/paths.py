"""Path helpers: user path normalisation (Windows/WSL) and archive member confinement."""
from __future__ import annotations

from pathlib import Path, PurePosixPath
import os
import re

_WINDOWS_DRIVE_PATTERN = re.compile(r"^([A-Za-z]):\\(.*)")
_WSL_PATTERN = re.compile(r"^/mnt/([a-zA-Z])/(.*)")
_LEADING_SLASH_DRIVE_PATTERN = re.compile(r"^/+([A-Za-z]:[\\/].*)")
_MEMBER_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


def _windows_to_wsl(path: str) -> str:
    match = _WINDOWS_DRIVE_PATTERN.match(path)
    if not match:
        return path
    rest = match.group(2).replace("\\", "/")
    return f"/mnt/{match.group(1).lower()}/{rest}"


def _wsl_to_windows(path: str) -> str:
    match = _WSL_PATTERN.match(path)
    if not match:
        return path
    rest = match.group(2).replace("/", "\\")
    return f"{match.group(1).upper()}:\\{rest}"


def normalize_user_path(value: str | None) -> str | None:
    """Normalize a user-supplied archive path for the current runtime.

    Surrounding whitespace and quotes (left behind by drag-and-drop into a
    terminal) are stripped and `~` is expanded. On POSIX a `C:\\...` path is
    mapped to its `/mnt/c/...` WSL mount; on Windows the reverse applies.
    """
    if not value:
        return value

    value = os.path.expanduser(value.strip().strip("'\""))
    if not value:
        return value

    if os.name == "posix":
        return _windows_to_wsl(value)

    match = _LEADING_SLASH_DRIVE_PATTERN.match(value)
    if match:
        value = match.group(1)
    return _wsl_to_windows(value).replace("/", "\\")


def display_path(value: str | os.PathLike | None) -> str | None:
    if not value:
        return None
    return _wsl_to_windows(str(value))


def enclosed_path(root: Path, member_name: str) -> Path | None:
    """Return `root / member_name` if the member stays inside `root`, else None.

    Archive member names always use forward slashes. Absolute names, drive
    letters and any `..` component are rejected rather than resolved.
    """
    name = member_name.replace("\\", "/")
    if not name or name.startswith("/") or _MEMBER_DRIVE_PATTERN.match(name):
        return None
    parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
    if not parts or ".." in parts:
        return None
    candidate = root.joinpath(*parts)
    try:
        candidate.resolve().relative_to(root.resolve())
    except ValueError:
        # a symlink already on disk points outside the working directory
        return None
    return candidate
