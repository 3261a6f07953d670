"""Writer: embed sidecar metadata into an image's EXIF block, in place.

Only the description and the creation time are written. Title, url, people,
geo data and photo-taken time stay in the sidecar.

JPEG and WebP files are patched with piexif, which rewrites the EXIF segment
without re-encoding pixels. Other containers Pillow can write EXIF into (PNG,
TIFF, and HEIC when pillow-heif is installed) are re-saved through Pillow,
keeping their text chunks, extra frames and colour profile.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging
import os
import re
import shutil
import struct

import piexif
from PIL import Image, PngImagePlugin, UnidentifiedImageError

from .errors import MetadataWriteError
from .sidecar import SidecarMetadata

# Optional HEIC support
try:
    import pillow_heif  # type: ignore
    pillow_heif.register_heif_opener()
except ImportError:
    pillow_heif = None

# strftime's %Y is not zero-padded below year 1000 on every libc
EXIF_DATETIME_FORMAT = "{year:04d}:%m:%d %H:%M:%S%z"

# exiftool tag name -> (piexif IFD name, tag id)
EXIF_TAGS: Dict[str, Tuple[str, int]] = {
    "ImageDescription": ("0th", piexif.ImageIFD.ImageDescription),
    "DateTimeOriginal": ("Exif", piexif.ExifIFD.DateTimeOriginal),
    "CreateDate": ("Exif", piexif.ExifIFD.DateTimeDigitized),
    "ModifyDate": ("0th", piexif.ImageIFD.DateTime),
}
DATE_TAGS = ("DateTimeOriginal", "CreateDate", "ModifyDate")

_EXIF_IFD_POINTER = 0x8769
_PILLOW_EXIF_FORMATS = {"PNG", "TIFF", "HEIF", "AVIF"}
_LOSSLESS_QUALITY = {"HEIF": -1, "AVIF": 100}
_PNG_RAW_EXIF_KEY = "Raw profile type exif"
_EPOCH_RE = re.compile(r"^[+-]?[0-9]+$")

JPEG_SOI = bytes.fromhex("ffd8")


def parse_epoch(value: Optional[str]) -> Optional[datetime]:
    """Turn a sidecar epoch string into a UTC datetime, or None if it is not one."""
    if value is None or not _EPOCH_RE.match(value):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def format_exif_datetime(dt: datetime) -> str:
    dt = dt.replace(microsecond=0)
    return dt.strftime(EXIF_DATETIME_FORMAT.format(year=dt.year))


def build_tags(meta: SidecarMetadata) -> Dict[str, str]:
    """Map a sidecar record onto the tag names/values that will be embedded."""
    tags: Dict[str, str] = {}
    if meta.description is not None:
        tags["ImageDescription"] = meta.description

    creation = meta.creation_time.timestamp if meta.creation_time else None
    dt = parse_epoch(creation)
    if dt is not None:
        stamp = format_exif_datetime(dt)
        for name in DATE_TAGS:
            tags[name] = stamp
    elif creation is not None:
        logging.debug("Ignoring unparsable creation timestamp %r", creation)
    return tags


def _uses_piexif(path: Path) -> bool:
    with open(path, "rb") as f:
        header = f.read(12)
    if header[:2] == JPEG_SOI:
        return True
    return header[:4] == b"RIFF" and header[8:12] == b"WEBP"


def _fix_scene_type(exif: dict) -> None:
    # piexif.load returns SceneType as int but dump() expects bytes
    scene = exif.get("Exif", {}).get(piexif.ExifIFD.SceneType)
    if isinstance(scene, int):
        exif["Exif"][piexif.ExifIFD.SceneType] = bytes([scene])


def _write_piexif(path: Path, tags: Dict[str, str]) -> None:
    exif = piexif.load(str(path))
    for name, value in tags.items():
        ifd, tag = EXIF_TAGS[name]
        exif.setdefault(ifd, {})[tag] = value.encode("utf-8")
    _fix_scene_type(exif)
    piexif.insert(piexif.dump(exif), str(path))


def _png_text(img: Image.Image) -> PngImagePlugin.PngInfo:
    """Carry the image's tEXt/zTXt/iTXt chunks over to the re-saved PNG."""
    info = PngImagePlugin.PngInfo()
    for key, value in img.text.items():
        if key == _PNG_RAW_EXIF_KEY:
            # replaced by the eXIf chunk
            continue
        if isinstance(value, PngImagePlugin.iTXt):
            info.add_itxt(key, value, value.lang or "", value.tkey or "")
        else:
            info.add_text(key, value)
    return info


def _pillow_save_kwargs(img: Image.Image, fmt: str, exif: Image.Exif) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"format": fmt, "exif": exif.tobytes()}
    if img.info.get("icc_profile"):
        kwargs["icc_profile"] = img.info["icc_profile"]
    if getattr(img, "n_frames", 1) > 1:
        kwargs["save_all"] = True
    if fmt == "PNG":
        kwargs["pnginfo"] = _png_text(img)
        if "dpi" in img.info:
            kwargs["dpi"] = img.info["dpi"]
    elif fmt in _LOSSLESS_QUALITY:
        # re-encode without adding further loss
        kwargs["quality"] = _LOSSLESS_QUALITY[fmt]
        if img.info.get("xmp"):
            kwargs["xmp"] = img.info["xmp"]
    return kwargs


def _write_pillow(path: Path, tags: Dict[str, str]) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with Image.open(path) as img:
            img.load()
            fmt = img.format
            if fmt not in _PILLOW_EXIF_FORMATS:
                raise MetadataWriteError(f"unsupported image format {fmt} for EXIF", path)
            exif = img.getexif()
            exif_ifd = exif.get_ifd(_EXIF_IFD_POINTER)
            for name, value in tags.items():
                ifd, tag = EXIF_TAGS[name]
                if ifd == "0th":
                    exif[tag] = value
                else:
                    exif_ifd[tag] = value
            if exif_ifd:
                exif[_EXIF_IFD_POINTER] = exif_ifd

            # frames are read lazily, so the source stays open until the copy is complete
            img.save(tmp_path, **_pillow_save_kwargs(img, fmt, exif))
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def apply_tags(image_path: Path, tags: Dict[str, str]) -> None:
    """Write `tags` into the image at `image_path`, replacing the file in place."""
    path = Path(image_path)
    if not path.is_file():
        raise MetadataWriteError(f"No such file: {path}", path)
    try:
        if _uses_piexif(path):
            _write_piexif(path, tags)
        else:
            _write_pillow(path, tags)
    except MetadataWriteError:
        raise
    except (OSError, ValueError, KeyError, struct.error,
            piexif.InvalidImageDataError, UnidentifiedImageError) as exc:
        raise MetadataWriteError(str(exc), path) from exc


def apply_metadata(meta: SidecarMetadata, image_path: Path) -> Dict[str, str]:
    """Embed the derived subset of `meta` into `image_path`; return the tags written.

    A record that yields no tags leaves the file untouched.
    """
    tags = build_tags(meta)
    if not tags:
        logging.debug("Nothing to write for %s", image_path)
        return tags
    apply_tags(image_path, tags)
    logging.info("Wrote %s to %s", ", ".join(tags), image_path)
    return tags
