"""Sidecar: decode a takeout JSON sidecar into a SidecarMetadata record.

Every recognised key is optional and unknown keys (`imageViews`,
`geoDataExif`, `googlePhotosOrigin`, ...) are ignored. Malformed JSON, or a
recognised key with the wrong JSON type, raises SidecarParseError; a partial
record is never returned.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import json

from .errors import SidecarParseError


@dataclass(frozen=True)
class TimeStamp:
    timestamp: Optional[str] = None
    formatted: Optional[str] = None


@dataclass(frozen=True)
class GeoData:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    latitude_span: Optional[float] = None
    longitude_span: Optional[float] = None


@dataclass(frozen=True)
class Person:
    name: str


@dataclass(frozen=True)
class SidecarMetadata:
    title: Optional[str] = None
    description: Optional[str] = None
    creation_time: Optional[TimeStamp] = None
    photo_taken_time: Optional[TimeStamp] = None
    geo_data: Optional[GeoData] = None
    people: Optional[List[Person]] = None
    url: Optional[str] = None


def _string(obj: Dict[str, Any], key: str, where: str) -> Optional[str]:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SidecarParseError(f"{where}{key}: expected a string, got {type(value).__name__}")
    return value


def _number(obj: Dict[str, Any], key: str, where: str) -> Optional[float]:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SidecarParseError(f"{where}{key}: expected a number, got {type(value).__name__}")
    return float(value)


def _object(obj: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise SidecarParseError(f"{key}: expected an object, got {type(value).__name__}")
    return value


def _timestamp(obj: Dict[str, Any], key: str) -> Optional[TimeStamp]:
    raw = _object(obj, key)
    if raw is None:
        return None
    where = f"{key}."
    return TimeStamp(timestamp=_string(raw, "timestamp", where),
                     formatted=_string(raw, "formatted", where))


def _geo(obj: Dict[str, Any]) -> Optional[GeoData]:
    raw = _object(obj, "geoData")
    if raw is None:
        return None
    where = "geoData."
    return GeoData(latitude=_number(raw, "latitude", where),
                   longitude=_number(raw, "longitude", where),
                   altitude=_number(raw, "altitude", where),
                   latitude_span=_number(raw, "latitudeSpan", where),
                   longitude_span=_number(raw, "longitudeSpan", where))


def _people(obj: Dict[str, Any]) -> Optional[List[Person]]:
    raw = obj.get("people")
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise SidecarParseError(f"people: expected a list, got {type(raw).__name__}")
    people = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SidecarParseError(f"people[{idx}]: expected an object, got {type(item).__name__}")
        name = _string(item, "name", f"people[{idx}].")
        if name is None:
            raise SidecarParseError(f"people[{idx}].name: missing field")
        people.append(Person(name=name))
    return people


def parse_sidecar(text: str) -> SidecarMetadata:
    """Decode sidecar JSON text. Raises SidecarParseError on bad input."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SidecarParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise SidecarParseError(f"Expected a JSON object, got {type(raw).__name__}")

    return SidecarMetadata(
        title=_string(raw, "title", ""),
        description=_string(raw, "description", ""),
        creation_time=_timestamp(raw, "creationTime"),
        photo_taken_time=_timestamp(raw, "photoTakenTime"),
        geo_data=_geo(raw),
        people=_people(raw),
        url=_string(raw, "url", ""),
    )


def read_sidecar(path: Path) -> SidecarMetadata:
    """Read and decode the sidecar at `path`.

    OSError propagates for unreadable files; undecodable bytes and bad JSON
    raise SidecarParseError with `path` attached.
    """
    path = Path(path)
    data = path.read_bytes()
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SidecarParseError(f"{path}: not UTF-8 text: {exc}", path=path) from exc
    try:
        return parse_sidecar(text)
    except SidecarParseError as exc:
        raise SidecarParseError(f"{path}: {exc}", path=path) from exc
