"""Extractor: unpack a takeout zip archive into a sibling working directory.

The working directory is named after the archive (`takeout.zip` -> `takeout/`)
and is reused when it already exists, so running twice simply overwrites the
previously extracted files.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional
import logging
import os
import shutil
import stat
import zipfile

from .errors import ArchiveError
from .utils.paths import enclosed_path


_COPY_CHUNK = 1024 * 1024


@dataclass
class ArchiveEntry:
    """A regular file inside the archive; its bytes are streamed on write."""
    relative_path: str
    info: zipfile.ZipInfo
    mode: Optional[int] = None

    @property
    def size(self) -> int:
        return self.info.file_size


def working_dir_for(archive_path: Path) -> Path:
    archive_path = Path(archive_path)
    return archive_path.parent / archive_path.stem


def _unix_mode(info: zipfile.ZipInfo) -> Optional[int]:
    # the upper 16 bits of external_attr hold st_mode for archives made on unix
    mode = info.external_attr >> 16
    if not mode:
        return None
    return stat.S_IMODE(mode)


def iter_entries(archive: zipfile.ZipFile) -> Iterator[ArchiveEntry]:
    """Yield every non-directory member of `archive` as an ArchiveEntry."""
    for info in archive.infolist():
        if info.is_dir():
            continue
        yield ArchiveEntry(relative_path=info.filename, info=info, mode=_unix_mode(info))


def _write_entry(archive: zipfile.ZipFile, working_dir: Path, entry: ArchiveEntry) -> Optional[Path]:
    outpath = enclosed_path(working_dir, entry.relative_path)
    if outpath is None:
        logging.warning("Skipping archive member outside working dir: %s", entry.relative_path)
        return None

    outpath.parent.mkdir(parents=True, exist_ok=True)
    if outpath.exists():
        # a previous run may have left it read-only
        outpath.unlink()
    with archive.open(entry.info) as src, open(outpath, "wb") as dst:
        shutil.copyfileobj(src, dst, _COPY_CHUNK)
    logging.debug("Extracted %s (%d bytes)", outpath, entry.size)

    if os.name == "posix" and entry.mode is not None:
        os.chmod(outpath, entry.mode)
    return outpath


def extract_archive_paths(archive_path: Path) -> tuple[Path, List[Path]]:
    """Extract `archive_path` and return (working_dir, list of written files)."""
    archive_path = Path(archive_path)
    working_dir = working_dir_for(archive_path)

    try:
        archive = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Cannot open archive {archive_path}: {exc}") from exc

    try:
        working_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        archive.close()
        raise ArchiveError(f"Cannot create working directory {working_dir}: {exc}") from exc

    written: List[Path] = []
    with archive:
        try:
            for entry in iter_entries(archive):
                outpath = _write_entry(archive, working_dir, entry)
                if outpath is not None:
                    written.append(outpath)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveError(f"Extracting {archive_path} failed: {exc}") from exc

    logging.info("Extracted %d files from %s into %s", len(written), archive_path, working_dir)
    return working_dir, written


def extract_archive(archive_path: Path) -> Path:
    """Extract `archive_path` and return its working directory."""
    working_dir, _ = extract_archive_paths(archive_path)
    return working_dir


if __name__ == "__main__":
    import sys
    if len(sys.argv) > 1:
        print(extract_archive(Path(sys.argv[1])))
    else:
        print("Provide a path to a takeout zip archive")
