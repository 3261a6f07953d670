"""Pairing: group sidecar JSON files with the images they describe.

Takeout names the files belonging to one photo like this::

    IMG_0799.HEIC            base image
    IMG_0799.HEIC.json       sidecar
    IMG_0799-edited.HEIC     edited image

All three reduce to the same canonical key (`<dir>/IMG_0799`), which is what
`classify_path` computes. Only the last extension segment is ever stripped, so
dots elsewhere in the name survive (`a.b.c.jpg` -> `a.b.c`).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
import logging

EDITED_SUFFIX = "-edited"
SIDECAR_EXTENSION = ".json"


class Role(str, Enum):
    SIDECAR = "sidecar"
    BASE_IMAGE = "base_image"
    EDITED_IMAGE = "edited_image"


@dataclass
class Pair:
    """Up to three files sharing one canonical key.

    A pair may be partial: an image with no sidecar, or a sidecar whose
    image is missing, are both normal.
    """
    canonical_key: str
    sidecar: Optional[Path] = None
    base_image: Optional[Path] = None
    edited_image: Optional[Path] = None

    def images(self) -> List[Path]:
        """Present image members, base image first."""
        return [p for p in (self.base_image, self.edited_image) if p is not None]

    def set_member(self, role: Role, path: Path) -> bool:
        """Fill the `role` slot. An occupied slot keeps its first path."""
        current = getattr(self, role.value)
        if current is not None and current != path:
            logging.warning("Pair %s already has %s %s, skipping %s",
                            self.canonical_key, role.value, current, path)
            return False
        setattr(self, role.value, path)
        return True


def _key(directory: Path, stem: str) -> str:
    return str(directory / stem)


def classify_path(path: Path, edited_suffix: str = EDITED_SUFFIX) -> Optional[Tuple[str, Role]]:
    """Return (canonical_key, role) for `path`, or None if no key can be derived."""
    path = Path(path)
    stem = path.stem

    if stem.endswith(edited_suffix):
        naked, role = stem[:-len(edited_suffix)], Role.EDITED_IMAGE
    elif path.suffix == SIDECAR_EXTENSION:
        # IMG_1.jpg.json -> IMG_1.jpg -> IMG_1
        naked, role = Path(stem).stem, Role.SIDECAR
    else:
        naked, role = stem, Role.BASE_IMAGE

    if not naked:
        return None
    return _key(path.parent, naked), role


def add_path(pairs: Dict[str, Pair], path: Path, edited_suffix: str = EDITED_SUFFIX) -> Optional[Pair]:
    """Fold one path into `pairs` (insert-or-update). Returns the touched pair."""
    classified = classify_path(path, edited_suffix)
    if classified is None:
        logging.warning("Cannot derive a pairing key for %s, skipping", path)
        return None
    key, role = classified
    pair = pairs.get(key)
    if pair is None:
        pair = pairs[key] = Pair(canonical_key=key)
    pair.set_member(role, Path(path))
    return pair


def create_pairs(paths: Iterable[Path], edited_suffix: str = EDITED_SUFFIX) -> Dict[str, Pair]:
    """Build the canonical_key -> Pair map from a collection of file paths.

    Paths are folded in sorted order so that two files competing for the
    same slot (`IMG_1.HEIC` and `IMG_1.MOV`) always resolve the same way.
    A set passed in is drained. Directories are skipped.
    """
    ordered = sorted(Path(p) for p in paths)
    if isinstance(paths, set):
        paths.clear()

    pairs: Dict[str, Pair] = {}
    for path in ordered:
        if path.is_dir():
            continue
        add_path(pairs, path, edited_suffix)
    logging.info("Resolved %d pairs from %d paths", len(pairs), len(ordered))
    return pairs
