from pathlib import Path

import pytest

from takeout_merge.pairing import Pair, Role, classify_path, create_pairs


def key(*parts):
    return str(Path(*parts))


def test_img_only():
    pairs = create_pairs({Path("my_img.jpg")})
    pair = pairs[key("my_img")]
    assert pair.base_image == Path("my_img.jpg")
    assert pair.edited_image is None
    assert pair.sidecar is None


def test_img_edited_only():
    pairs = create_pairs({Path("my_img-edited.jpg")})
    pair = pairs[key("my_img")]
    assert pair.edited_image == Path("my_img-edited.jpg")
    assert pair.base_image is None
    assert pair.sidecar is None


def test_sidecar_of_edited_name_is_a_sidecar():
    pairs = create_pairs({Path("my_img-edited.jpg.json")})
    pair = pairs[key("my_img-edited")]
    assert pair.sidecar == Path("my_img-edited.jpg.json")
    assert pair.images() == []


def test_basic_pair():
    pairs = create_pairs({Path("my_img.jpg.json"), Path("my_img.jpg")})
    assert len(pairs) == 1
    pair = pairs[key("my_img")]
    assert pair.base_image == Path("my_img.jpg")
    assert pair.sidecar == Path("my_img.jpg.json")
    assert pair.edited_image is None


def test_pair_in_nested_dir():
    pairs = create_pairs({Path("some/dir/my_img.jpg.json"), Path("some/dir/my_img.jpg")})
    assert list(pairs) == [key("some", "dir", "my_img")]


def test_same_name_in_different_dirs_does_not_pair():
    pairs = create_pairs({Path("a/img.jpg"), Path("b/img.jpg.json")})
    assert len(pairs) == 2


def test_pair_with_edited_img():
    pairs = create_pairs({Path("my_img.jpg.json"), Path("my_img.jpg"), Path("my_img-edited.jpg")})
    assert len(pairs) == 1
    pair = pairs[key("my_img")]
    assert pair.sidecar == Path("my_img.jpg.json")
    assert pair.base_image == Path("my_img.jpg")
    assert pair.edited_image == Path("my_img-edited.jpg")
    assert pair.images() == [Path("my_img.jpg"), Path("my_img-edited.jpg")]


@pytest.mark.parametrize("name", ["name.ext", "name.ext.json", "name-edited.ext"])
def test_all_role_variants_share_a_key(name):
    assert classify_path(Path("dir") / name)[0] == key("dir", "name")


@pytest.mark.parametrize("name", [
    "name.part.two.jpg",
    "name.part.two.jpg.json",
    "name.part.two-edited.jpg",
])
def test_inner_dots_are_kept(name):
    assert classify_path(Path(name))[0] == "name.part.two"


def test_roles():
    assert classify_path(Path("a.jpg"))[1] is Role.BASE_IMAGE
    assert classify_path(Path("a.jpg.json"))[1] is Role.SIDECAR
    assert classify_path(Path("a-edited.jpg"))[1] is Role.EDITED_IMAGE


def test_no_extension_is_an_image():
    assert classify_path(Path("dir/photo")) == (key("dir", "photo"), Role.BASE_IMAGE)


def test_edited_stem_wins_over_json_extension():
    assert classify_path(Path("x-edited.json")) == ("x", Role.EDITED_IMAGE)


def test_sidecar_without_inner_extension():
    assert classify_path(Path("metadata.json")) == ("metadata", Role.SIDECAR)


def test_custom_edited_suffix():
    assert classify_path(Path("a-bearbeitet.jpg"), "-bearbeitet") == ("a", Role.EDITED_IMAGE)


def test_unclassifiable_path_is_skipped():
    assert classify_path(Path("-edited.jpg")) is None
    pairs = create_pairs({Path("-edited.jpg"), Path("ok.jpg")})
    assert list(pairs) == ["ok"]


def test_every_path_lands_in_exactly_one_role():
    paths = {
        Path("a/one.jpg"), Path("a/one.jpg.json"), Path("a/one-edited.jpg"),
        Path("a/two.heic.json"), Path("a/three.png"), Path("b/one.jpg"),
        Path("b/four-edited.jpg"), Path("b/v1.2.final.jpg"), Path("b/v1.2.final.jpg.json"),
    }
    expected = set(paths)
    pairs = create_pairs(paths)

    seen = []
    for pair in pairs.values():
        members = [p for p in (pair.sidecar, pair.base_image, pair.edited_image) if p]
        assert members
        seen.extend(members)
    assert len(seen) == len(set(seen))
    assert set(seen) == expected


def test_input_set_is_consumed():
    paths = {Path("a.jpg"), Path("a.jpg.json")}
    create_pairs(paths)
    assert paths == set()


def test_directories_are_skipped(tmp_path):
    (tmp_path / "album.jpg").mkdir()
    (tmp_path / "x.jpg").write_bytes(b"")
    pairs = create_pairs({tmp_path / "album.jpg", tmp_path / "x.jpg"})
    assert list(pairs) == [str(tmp_path / "x")]


def test_slot_collision_keeps_first_sorted_path():
    pairs = create_pairs({Path("IMG_1.MOV"), Path("IMG_1.HEIC")})
    assert pairs["IMG_1"].base_image == Path("IMG_1.HEIC")


def test_set_member_reports_collision():
    pair = Pair(canonical_key="k")
    assert pair.set_member(Role.SIDECAR, Path("k.jpg.json"))
    assert pair.set_member(Role.SIDECAR, Path("k.jpg.json"))
    assert not pair.set_member(Role.SIDECAR, Path("k.png.json"))
    assert pair.sidecar == Path("k.jpg.json")
