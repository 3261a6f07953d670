"""Takeout Merge package - extract a photo takeout archive and embed its sidecar metadata into the images."""

from .extractor import extract_archive
from .scanner import scan_files
from .pairing import Pair, create_pairs, classify_path
from .sidecar import SidecarMetadata, parse_sidecar, read_sidecar
from .writer import apply_metadata, build_tags

__all__ = [
    "extract_archive",
    "scan_files",
    "Pair",
    "create_pairs",
    "classify_path",
    "SidecarMetadata",
    "parse_sidecar",
    "read_sidecar",
    "apply_metadata",
    "build_tags",
]
