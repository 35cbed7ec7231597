import zipfile

import pytest

from siteforge.errors import UnknownProjectError
from siteforge.models import ArtifactManifest, ManifestFile
from siteforge.store import ProjectStore, is_valid_id


def test_new_ids_are_short_base36():
    store = ProjectStore("unused")
    pid = store.new_id()
    assert len(pid) == 8
    assert is_valid_id(pid)


@pytest.mark.parametrize("bad", ["", "../etc", "ABC", "a/b", "x" * 33, "abc123\n", None])
def test_invalid_ids_are_rejected(tmp_path, bad):
    store = ProjectStore(tmp_path)
    assert store.exists(bad) is False
    with pytest.raises(UnknownProjectError):
        store.load_manifest(bad)


def test_missing_manifest_is_unknown(tmp_path):
    store = ProjectStore(tmp_path)
    (tmp_path / "abc12345").mkdir()
    assert store.exists("abc12345") is False
    with pytest.raises(UnknownProjectError):
        store.load_manifest("abc12345")


def test_manifest_round_trips_through_disk(tmp_path):
    store = ProjectStore(tmp_path)
    m = ArtifactManifest(site_name="Ada", files=[ManifestFile(path="index.html", content="<p>hi</p>")], accent_palette=["#fff"])
    store.save_manifest("abc12345", m)
    assert store.exists("abc12345")
    assert store.load_manifest("abc12345") == m
    assert not list(tmp_path.glob("abc12345/*.tmp"))


def test_build_skips_traversal_paths_and_packages_assets(tmp_path):
    store = ProjectStore(tmp_path)
    m = ArtifactManifest(
        files=[
            ManifestFile(path="index.html", content="<p>hi</p>"),
            ManifestFile(path="../outside.txt", content="nope"),
            ManifestFile(path="css/extra.css", content="a{}"),
        ]
    )
    store.save_manifest("site0001", m)
    store.write_asset("site0001", "hero.png", b"\x89PNG")

    build_dir = store.build("site0001")

    assert (build_dir / "index.html").read_text(encoding="utf-8") == "<p>hi</p>"
    assert (build_dir / "css" / "extra.css").exists()
    assert (build_dir / "assets" / "hero.png").read_bytes() == b"\x89PNG"
    assert not (tmp_path / "outside.txt").exists()
    assert not (tmp_path / "site0001" / "outside.txt").exists()
    with zipfile.ZipFile(store.archive_path("site0001")) as zf:
        names = zf.namelist()
    assert "index.html" in names and "assets/hero.png" in names
    assert all(".." not in n for n in names)


def test_rebuild_replaces_previous_output(tmp_path):
    store = ProjectStore(tmp_path)
    store.save_manifest("site0002", ArtifactManifest(files=[ManifestFile(path="old.html", content="x")]))
    store.build("site0002")
    store.save_manifest("site0002", ArtifactManifest(files=[ManifestFile(path="new.html", content="y")]))
    build_dir = store.build("site0002")
    assert not (build_dir / "old.html").exists()
    assert (build_dir / "new.html").exists()
