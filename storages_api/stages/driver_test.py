"""Tests for LocalDriver."""

import io
import os
from pathlib import Path

import pytest

from storages_api.errors import (
    NotFound,
    PathEscape,
    StorageNotFound,
    ValidationError,
)
from storages_api.stages.driver import LocalDriver


class TestResolve:
    """Path resolution stays inside the mount root."""

    @pytest.mark.parametrize(
        "sub_path,expected",
        [
            ("", ""),
            ("/", ""),
            ("photos", "photos"),
            ("/photos/2024", os.path.join("photos", "2024")),
            ("photos/../docs", "docs"),
            ("./a//b/", os.path.join("a", "b")),
            ("..foo", "..foo"),
        ],
    )
    def test_descendants_resolve_under_root(self, driver, storage_root, sub_path, expected):
        resolved = driver.resolve("ssd", sub_path)
        assert resolved == os.path.normpath(os.path.join(str(storage_root), expected))

    @pytest.mark.parametrize(
        "sub_path",
        ["..", "../secret", "photos/../../secret", "a/b/../../../etc/passwd", "/../.."],
    )
    def test_escapes_are_rejected(self, driver, sub_path):
        with pytest.raises(PathEscape):
            driver.resolve("ssd", sub_path)

    def test_storage_lookup_ignores_case(self, driver, storage_root):
        assert driver.resolve("SSD", "a") == os.path.join(str(storage_root), "a")
        assert driver.mount("Ssd").name == "ssd"

    def test_unknown_storage(self, driver):
        with pytest.raises(StorageNotFound, match="storage 'hdd' not found"):
            driver.resolve("hdd", "a")

    def test_relative_path(self, driver, storage_root):
        assert driver.relative_path("ssd", str(storage_root)) == ""
        assert driver.relative_path("ssd", str(storage_root / "a" / "b.txt")) == "a/b.txt"


class TestReads:
    def test_stat_file_and_dir(self, driver, storage_root, make_files):
        make_files(storage_root, {"docs/a.TXT": "hello", "docs/b.md": "x"})

        entry = driver.stat("ssd", "docs/a.TXT")
        assert entry.name == "a.TXT"
        assert entry.path == "docs/a.TXT"
        assert entry.size == 5
        assert entry.extension == "txt"
        assert not entry.is_dir
        assert entry.mode.startswith("-")

        folder = driver.stat("ssd", "docs")
        assert folder.is_dir
        assert folder.item_count == 2
        assert folder.mode.startswith("d")

    def test_stat_missing(self, driver):
        with pytest.raises(NotFound):
            driver.stat("ssd", "missing.txt")

    def test_is_dir(self, driver, storage_root, make_files):
        make_files(storage_root, {"d/": "", "f.txt": "x"})
        assert driver.is_dir("ssd", "d")
        assert not driver.is_dir("ssd", "f.txt")

    def test_open_file(self, driver, storage_root, make_files):
        make_files(storage_root, {"f.txt": "content", "d/": ""})
        with driver.open_file("ssd", "f.txt") as handle:
            assert handle.read() == b"content"

        with pytest.raises(ValidationError):
            driver.open_file("ssd", "d")
        with pytest.raises(NotFound):
            driver.open_file("ssd", "nope.txt")

    def test_scan_dir_on_file_is_validation_error(self, driver, storage_root, make_files):
        make_files(storage_root, {"f.txt": "x"})
        with pytest.raises(ValidationError):
            driver.scan_dir("ssd", "f.txt")

    def test_list_storages(self, driver, storage_root):
        storages = driver.list_storages()
        assert len(storages) == 1
        info = storages[0]
        assert info.name == "ssd"
        assert info.path == str(storage_root)
        assert info.total_size > 0
        assert info.total_size >= info.free_size
        # A tmp directory is not a mount point of its own
        assert info.is_mounted is False

    def test_list_storages_missing_root(self, tmp_path):
        driver = LocalDriver({"gone": str(tmp_path / "gone")})
        info = driver.list_storages()[0]
        assert (info.total_size, info.used_size, info.free_size) == (0, 0, 0)
        assert info.is_mounted is False


class TestWrites:
    def test_create_folder_is_recursive_and_idempotent(self, driver, storage_root):
        driver.create_folder("ssd", "a/b/c")
        driver.create_folder("ssd", "a/b/c")
        assert (storage_root / "a" / "b" / "c").is_dir()

    def test_save_file_creates_parents_and_overwrites(self, driver, storage_root):
        driver.save_file("ssd", "new/dir/f.bin", io.BytesIO(b"first"))
        driver.save_file("ssd", "new/dir/f.bin", io.BytesIO(b"second"))
        assert (storage_root / "new" / "dir" / "f.bin").read_bytes() == b"second"

    def test_save_file_escape(self, driver, tmp_path):
        with pytest.raises(PathEscape):
            driver.save_file("ssd", "../outside.txt", io.BytesIO(b"x"))
        assert not (tmp_path / "outside.txt").exists()

    def test_rename(self, driver, storage_root, make_files):
        make_files(storage_root, {"old.txt": "x", "dst/": ""})
        driver.rename("ssd", "old.txt", "dst/new.txt")
        assert not (storage_root / "old.txt").exists()
        assert (storage_root / "dst" / "new.txt").read_text() == "x"

    def test_rename_missing_source(self, driver):
        with pytest.raises(NotFound):
            driver.rename("ssd", "nope.txt", "other.txt")

    def test_rename_destination_escape(self, driver, storage_root, make_files):
        make_files(storage_root, {"old.txt": "x"})
        with pytest.raises(PathEscape):
            driver.rename("ssd", "old.txt", "../../stolen.txt")
        assert (storage_root / "old.txt").exists()

    def test_copy_file(self, driver, storage_root, make_files):
        make_files(storage_root, {"a.txt": "payload"})
        driver.copy("ssd", "a.txt", "b.txt")
        assert (storage_root / "b.txt").read_text() == "payload"
        assert (storage_root / "a.txt").read_text() == "payload"

    def test_copy_directory_tree(self, driver, storage_root, make_files):
        make_files(
            storage_root,
            {"src/one.txt": "1", "src/nested/two.txt": "2", "src/empty/": ""},
        )
        driver.copy("ssd", "src", "dst")
        assert (storage_root / "dst" / "one.txt").read_text() == "1"
        assert (storage_root / "dst" / "nested" / "two.txt").read_text() == "2"
        assert (storage_root / "dst" / "empty").is_dir()

    def test_copy_into_own_subtree(self, driver, storage_root, make_files):
        make_files(storage_root, {"src/one.txt": "1"})
        with pytest.raises(ValidationError):
            driver.copy("ssd", "src", "src/inner")

    def test_copy_file_onto_itself_keeps_content(self, driver, storage_root, make_files):
        make_files(storage_root, {"a.txt": "important data"})
        with pytest.raises(ValidationError):
            driver.copy("ssd", "a.txt", "a.txt")
        with pytest.raises(ValidationError):
            driver.copy("ssd", "a.txt", "./a.txt")
        assert (storage_root / "a.txt").read_text() == "important data"

    def test_copy_missing_source(self, driver):
        with pytest.raises(NotFound):
            driver.copy("ssd", "nope", "dst")

    def test_delete_file_and_tree(self, driver, storage_root, make_files):
        make_files(storage_root, {"f.txt": "x", "tree/a/b.txt": "y"})
        driver.delete("ssd", "f.txt")
        driver.delete("ssd", "tree")
        assert not (storage_root / "f.txt").exists()
        assert not (storage_root / "tree").exists()

    def test_delete_missing_is_noop(self, driver):
        driver.delete("ssd", "never/existed")

    @pytest.mark.parametrize("sub_path", ["", "/", ".", "a/.."])
    def test_delete_root_refused(self, driver, storage_root, make_files, sub_path):
        make_files(storage_root, {"keep.txt": "x"})
        with pytest.raises(ValidationError):
            driver.delete("ssd", sub_path)
        assert (storage_root / "keep.txt").exists()

    def test_rename_root_refused(self, driver):
        with pytest.raises(ValidationError):
            driver.rename("ssd", "/", "elsewhere")


def test_mount_roots_are_normalized(tmp_path: Path):
    driver = LocalDriver({"Media": str(tmp_path) + "/./sub/.."})
    mount = driver.mount("media")
    assert mount.name == "Media"
    assert mount.root_path == str(tmp_path)
