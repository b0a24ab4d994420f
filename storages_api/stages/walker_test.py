"""Tests for RecursiveWalker."""

import pytest

from storages_api.errors import NotFound
from storages_api.stages.walker import RecursiveWalker


@pytest.fixture
def walker(driver):
    return RecursiveWalker(driver)


@pytest.fixture
def tree(storage_root, make_files):
    make_files(
        storage_root,
        {
            "photos/2024/a.jpg": "a",
            "photos/2024/b.jpg": "b",
            "photos/notes.txt": "n",
            "photos/.cache/thumb.jpg": "t",
            "code/main.py": "print()",
            "code/README": "r",
            "code/node_modules/lib/index.js": "x",
            "code/node_modules/lib/logo.png": "x",
            "code/design.psd": "p",
            "top.mp4": "v",
            ".hidden.jpg": "h",
        },
    )
    return storage_root


def test_walk_all_excludes_hidden_and_junk(walker, tree):
    entries = walker.walk_all("ssd")
    paths = {e.path for e in entries}

    assert paths == {
        "photos",
        "photos/2024",
        "photos/2024/a.jpg",
        "photos/2024/b.jpg",
        "photos/notes.txt",
        "code",
        "code/design.psd",
        "top.mp4",
    }


def test_walk_all_show_hidden_descends_hidden_dirs(walker, tree):
    paths = {e.path for e in walker.walk_all("ssd", show_hidden=True)}

    assert "photos/.cache" in paths
    assert "photos/.cache/thumb.jpg" in paths
    assert "code/node_modules/lib/logo.png" in paths
    assert ".hidden.jpg" in paths
    # Junk stays out even when hidden entries are shown
    assert "code/main.py" not in paths
    assert "code/node_modules/lib/index.js" not in paths


def test_directories_carry_item_count(walker, tree):
    entries = {e.path: e for e in walker.walk_all("ssd")}
    assert entries["photos"].is_dir
    assert entries["photos"].item_count == 3
    assert entries["photos/2024"].item_count == 2
    assert entries["top.mp4"].extension == "mp4"


def test_root_is_not_an_entry(walker, tree):
    assert all(e.path for e in walker.walk_all("ssd"))


def test_empty_storage(walker):
    assert walker.walk_all("ssd") == []


def test_missing_root_raises(walker, tree):
    tree.rename(tree.with_name("unplugged"))
    with pytest.raises(NotFound):
        walker.walk_all("ssd")
