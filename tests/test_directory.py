import os

import pytest

from udlf_api.browser import BlobDirectoryBrowser, DirectoryBrowser, PathAllowlist
from udlf_api.browser.directory import compile_glob
from udlf_api.errors import BadRequest, NotFound, PermissionDenied
from udlf_api.storage import BlobStorage


@pytest.fixture
def tree(tmp_path):
    """tmp_path/{Datasets/mpeg7/..., outputs/, secrets/}"""
    mpeg7 = tmp_path / "Datasets" / "mpeg7"
    (mpeg7 / "original" / "deep" / "deeper").mkdir(parents=True)
    (mpeg7 / "lists.txt").write_text("a\n")
    (mpeg7 / "classes.txt").write_text("a:x\n")
    (mpeg7 / "original" / "apple-1.gif").write_bytes(b"GIF")
    (mpeg7 / "original" / "Apple-2.GIF").write_bytes(b"GIF")
    (mpeg7 / "original" / "deep" / "deeper" / "apple-3.gif").write_bytes(b"GIF")
    (tmp_path / "outputs").mkdir()
    (tmp_path / "secrets").mkdir()
    (tmp_path / "secrets" / "key.txt").write_text("s")
    return tmp_path


@pytest.fixture
def browser(tree):
    return DirectoryBrowser(PathAllowlist(str(tree), [str(tree / "Datasets"), str(tree / "outputs")]))


def test_list_root_hides_unlisted_children(browser, tree):
    listing = browser.list()

    assert listing.current_path == str(tree)
    assert listing.parent_path is None
    assert [i.name for i in listing.items] == ["Datasets", "outputs"]


def test_list_sorts_directories_first(browser, tree):
    listing = browser.list(str(tree / "Datasets" / "mpeg7"))

    assert [(i.name, i.kind) for i in listing.items] == [
        ("original", "directory"),
        ("classes.txt", "file"),
        ("lists.txt", "file"),
    ]
    assert listing.parent_path == str(tree / "Datasets")
    assert listing.items[1].size == 4
    assert listing.items[0].size is None
    assert listing.total_items == 3


def test_list_rejects_paths_outside_allowlist(browser, tree):
    with pytest.raises(PermissionDenied):
        browser.list(str(tree / "secrets"))
    with pytest.raises(PermissionDenied):
        browser.list(str(tree / "Datasets" / ".." / "secrets"))


def test_list_missing_and_non_directory(browser, tree):
    with pytest.raises(NotFound):
        browser.list(str(tree / "Datasets" / "nope"))
    with pytest.raises(BadRequest):
        browser.list(str(tree / "Datasets" / "mpeg7" / "lists.txt"))


def test_list_unreadable_directory_raises_permission_denied(browser, tree, monkeypatch):
    locked = str(tree / "Datasets" / "mpeg7")
    real_listdir = os.listdir

    def listdir(path):
        if path == locked:
            raise PermissionError(13, "Permission denied", path)
        return real_listdir(path)

    monkeypatch.setattr(os, "listdir", listdir)

    with pytest.raises(PermissionDenied):
        browser.list(locked)


def test_stat(browser, tree):
    item = browser.stat(str(tree / "Datasets" / "mpeg7" / "lists.txt"))
    assert item.kind == "file"
    assert item.size == 2
    assert item.last_modified is not None

    with pytest.raises(NotFound):
        browser.stat(str(tree / "Datasets" / "absent.txt"))
    with pytest.raises(BadRequest):
        browser.stat("")


@pytest.mark.parametrize(
    "pattern, matches",
    [
        ("*.gif", True),
        ("apple-?.GIF", True),
        ("APPLE*", True),
        ("*.png", False),
        ("apple-1.gi", False),
        ("a.p*", False),
    ],
)
def test_compile_glob(pattern, matches):
    assert bool(compile_glob(pattern).match("apple-1.gif")) is matches


def test_compile_glob_rejects_empty():
    with pytest.raises(BadRequest):
        compile_glob("")


def test_search_is_case_insensitive_and_depth_limited(browser, tree):
    results = browser.search(str(tree / "Datasets"), "apple*.gif", max_depth=3)
    assert sorted(i.name for i in results) == ["Apple-2.GIF", "apple-1.gif"]

    deeper = browser.search(str(tree / "Datasets"), "apple*.gif", max_depth=5)
    assert "apple-3.gif" in [i.name for i in deeper]


def test_search_from_root_skips_disallowed_dirs(browser):
    results = browser.search(None, "*.txt", max_depth=4)
    assert sorted(i.name for i in results) == ["classes.txt", "lists.txt"]


def test_available_paths(browser, tree):
    assert browser.available_paths() == [
        ("Datasets", str(tree / "Datasets")),
        ("outputs", str(tree / "outputs")),
    ]


def test_blob_listing(fake_bucket):
    listing = BlobDirectoryBrowser(BlobStorage(bucket=fake_bucket)).list("/app/Datasets/mpeg7")

    assert listing.current_path == "app/Datasets/mpeg7"
    assert listing.parent_path == "app/Datasets"
    assert [(i.name, i.kind) for i in listing.items] == [
        ("original", "directory"),
        ("classes.txt", "file"),
        ("lists.txt", "file"),
    ]
