import os
import stat
import zipfile

import pytest

from conftest import jpeg_bytes, make_takeout_zip
from takeout_merge.errors import ArchiveError
from takeout_merge.extractor import (
    extract_archive,
    extract_archive_paths,
    iter_entries,
    working_dir_for,
)
from takeout_merge.scanner import scan_files
from takeout_merge.utils.paths import enclosed_path


def test_working_dir_is_sibling_named_after_archive(tmp_path):
    assert working_dir_for(tmp_path / "takeout-001.zip") == tmp_path / "takeout-001"


def test_extract_keeps_directory_structure(takeout_zip, tmp_path):
    working_dir = extract_archive(takeout_zip)
    assert working_dir == tmp_path / "takeout"
    photos = working_dir / "Takeout" / "Google Photos"
    assert photos.is_dir()
    assert (photos / "img.jpg").read_bytes() == jpeg_bytes()
    assert (photos / "img.jpg.json").is_file()
    assert (photos / "img-edited.jpg").is_file()


def test_extracted_paths_match_walk(takeout_zip):
    working_dir, written = extract_archive_paths(takeout_zip)
    assert len(written) == 3
    assert set(written) == scan_files(working_dir)


def test_directory_entries_are_not_files(tmp_path):
    archive = tmp_path / "a.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("album/", b"")
        zf.writestr("album/empty/", b"")
        zf.writestr("album/x.jpg", b"x")
    with zipfile.ZipFile(archive) as zf:
        assert [e.relative_path for e in iter_entries(zf)] == ["album/x.jpg"]
    working_dir, written = extract_archive_paths(archive)
    assert written == [working_dir / "album" / "x.jpg"]


def test_members_are_streamed_not_read_whole(takeout_zip, monkeypatch):
    def no_whole_reads(self, *args, **kwargs):
        raise AssertionError("member loaded into memory")

    monkeypatch.setattr(zipfile.ZipFile, "read", no_whole_reads)
    working_dir = extract_archive(takeout_zip)
    assert (working_dir / "Takeout" / "Google Photos" / "img.jpg").read_bytes() == jpeg_bytes()


def test_entries_report_uncompressed_size(tmp_path):
    archive = make_takeout_zip(tmp_path / "s.zip", {"a.txt": b"12345"})
    with zipfile.ZipFile(archive) as zf:
        assert [e.size for e in iter_entries(zf)] == [5]


def test_rerun_overwrites(takeout_zip):
    first = extract_archive(takeout_zip)
    (first / "Takeout" / "Google Photos" / "img.jpg").write_bytes(b"changed")
    second = extract_archive(takeout_zip)
    assert second == first
    assert (second / "Takeout" / "Google Photos" / "img.jpg").read_bytes() == jpeg_bytes()


def test_escaping_members_are_skipped(tmp_path):
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr(zipfile.ZipInfo("../outside.txt"), b"nope")
        zf.writestr(zipfile.ZipInfo("a/../../outside2.txt"), b"nope")
        zf.writestr("inside.txt", b"ok")
    working_dir, written = extract_archive_paths(archive)
    assert written == [working_dir / "inside.txt"]
    assert not (tmp_path / "outside.txt").exists()
    assert not (tmp_path / "outside2.txt").exists()


@pytest.mark.parametrize("name", ["/etc/passwd", "C:/x.txt", "..", "a/../../b", ""])
def test_enclosed_path_rejects(tmp_path, name):
    assert enclosed_path(tmp_path, name) is None


def test_enclosed_path_accepts_nested(tmp_path):
    assert enclosed_path(tmp_path, "a/./b/c.jpg") == tmp_path / "a" / "b" / "c.jpg"


@pytest.mark.skipif(os.name != "posix", reason="unix permissions")
def test_unix_permissions_are_restored(tmp_path):
    archive = tmp_path / "perm.zip"
    info = zipfile.ZipInfo("script.sh")
    info.external_attr = (stat.S_IFREG | 0o750) << 16
    read_only = zipfile.ZipInfo("locked.txt")
    read_only.external_attr = (stat.S_IFREG | 0o400) << 16
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr(info, b"#!/bin/sh\n")
        zf.writestr(read_only, b"locked")

    working_dir = extract_archive(archive)
    assert stat.S_IMODE(os.stat(working_dir / "script.sh").st_mode) == 0o750
    assert stat.S_IMODE(os.stat(working_dir / "locked.txt").st_mode) == 0o400
    # a second run replaces the read-only file instead of failing
    extract_archive(archive)


def test_missing_archive_is_fatal(tmp_path):
    with pytest.raises(ArchiveError):
        extract_archive(tmp_path / "missing.zip")


def test_garbage_archive_is_fatal(tmp_path):
    archive = tmp_path / "garbage.zip"
    archive.write_bytes(b"definitely not a zip")
    with pytest.raises(ArchiveError):
        extract_archive(archive)
    assert not (tmp_path / "garbage").exists()


def test_make_takeout_zip_helper_accepts_text(tmp_path):
    archive = make_takeout_zip(tmp_path / "t.zip", {"notes.txt": "hello"})
    working_dir = extract_archive(archive)
    assert (working_dir / "notes.txt").read_text() == "hello"
