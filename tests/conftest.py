import io
import json
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from takeout_merge.config import load_settings

SIDECAR = {
    "title": "img.jpg",
    "description": "d",
    "imageViews": "3",
    "creationTime": {"timestamp": "1563490529", "formatted": "Jul 18, 2019, 10:55:29 PM UTC"},
    "photoTakenTime": {"timestamp": "1563395329", "formatted": "Jul 17, 2019, 8:28:49 PM UTC"},
}


def jpeg_bytes(color="red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="JPEG")
    return buf.getvalue()


def make_jpeg(path: Path, color="red") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(jpeg_bytes(color))
    return path


def make_takeout_zip(path: Path, members: dict) -> Path:
    """Write a zip whose members map archive names to bytes/str/dict contents."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            if isinstance(content, dict):
                content = json.dumps(content)
            zf.writestr(name, content)
    return path


@pytest.fixture
def takeout_zip(tmp_path):
    return make_takeout_zip(tmp_path / "takeout.zip", {
        "Takeout/Google Photos/img.jpg": jpeg_bytes(),
        "Takeout/Google Photos/img.jpg.json": SIDECAR,
        "Takeout/Google Photos/img-edited.jpg": jpeg_bytes("blue"),
    })


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("TAKEOUT_MERGE_CONFIG", str(tmp_path / "no-config.json"))
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()
