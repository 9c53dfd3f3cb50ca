import os

import pytest

from modoverlay.exceptions import ExternalCommandFailure, LayoutConflict, ResolutionError
from modoverlay.materialize import copy_tree, materialize, overlay_key
from tutil import read_file, read_manifest, write_tree


@pytest.mark.parametrize(
    "package_id,expected",
    [
        ("pkgA", "pkgA"),
        ("golang.org/x/text", os.path.join("golang.org", "x", "text")),
    ],
)
def test_overlay_key(package_id: str, expected: str) -> None:
    assert overlay_key(package_id) == expected


@pytest.mark.parametrize(
    "package_id",
    ["", ".", "./pkgA", "/abs", "a//b", "a/../b", "a\\b"],
)
def test_overlay_key_invalid(package_id: str) -> None:
    with pytest.raises(ResolutionError):
        overlay_key(package_id)


def test_copy_tree(tmp_path) -> None:
    source = tmp_path / "source"
    write_tree(
        str(source),
        {
            "a.go": "package a\n",
            "sub/b.go": "package sub\n",
            ".git/config": "[core]\n",
        },
    )
    os.symlink("a.go", source / "link.go")
    os.symlink("sub", source / "sublink")
    dest = tmp_path / "dest"

    stats = copy_tree(str(source), str(dest))

    assert read_file(str(dest / "sub" / "b.go")) == "package sub\n"
    assert not (dest / ".git").exists()
    assert os.readlink(dest / "link.go") == "a.go"
    assert os.readlink(dest / "sublink") == "sub"
    assert stats.symlinks == 2
    assert stats.linked + stats.copied == 2
    if stats.linked == 2:
        assert os.stat(dest / "a.go").st_ino == os.stat(source / "a.go").st_ino


def test_materialize_once_per_package(workspace, fake_toolchain) -> None:
    first = materialize(workspace, "pkgA")
    second = materialize(workspace, "pkgA")
    assert first == second == os.path.join(workspace.overlay_dir, "pkgA")
    assert fake_toolchain.locate_calls == ["pkgA"]
    assert fake_toolchain.fetch_calls == [["pkgA"]]
    assert workspace.visited_packages == frozenset({"pkgA"})
    assert read_file(os.path.join(first, "sub", "file.ext")) == "original\n"

    manifest = read_manifest(workspace.root_dir)
    redirects = manifest.redirects_for("pkgA")
    assert len(redirects) == 1
    assert redirects[0].new.path == os.path.join(".", "overlay", "pkgA")


def test_materialize_nested_module_path(workspace) -> None:
    tree = materialize(workspace, "golang.org/x/text")
    assert tree == os.path.join(workspace.overlay_dir, "golang.org", "x", "text")
    assert os.path.isfile(os.path.join(tree, "language", "language.go"))


def test_materialize_skips_vcs_metadata(workspace) -> None:
    tree = materialize(workspace, "pkgB")
    assert os.path.isfile(os.path.join(tree, "b", "keep.ext"))
    assert not os.path.exists(os.path.join(tree, ".git"))


def test_materialize_destination_is_a_file(workspace) -> None:
    os.makedirs(workspace.overlay_dir)
    write_tree(workspace.overlay_dir, {"pkgA": "not a directory\n"})
    with pytest.raises(LayoutConflict):
        materialize(workspace, "pkgA")


def test_materialize_unknown_package(workspace) -> None:
    with pytest.raises(ExternalCommandFailure):
        materialize(workspace, "example.com/unknown")
    assert workspace.visited_packages == frozenset()
