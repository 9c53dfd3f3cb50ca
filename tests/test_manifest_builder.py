import os
import re
from datetime import datetime, timezone

import pytest

from modoverlay.exceptions import ManifestParseError, RedirectConflict
from modoverlay.gomod import parse_manifest
from modoverlay.manifest_builder import (
    PLACEHOLDER_VERSION,
    build_manifest,
    generate_identity,
    reanchor_redirects,
)
from modoverlay.redirects import add_redirect
from tutil import read_file, read_manifest, write_tree


def test_generate_identity() -> None:
    now = datetime(2024, 3, 1, 12, 30, 5, tzinfo=timezone.utc)
    identity = generate_identity(now)
    assert re.fullmatch(r"modoverlay_20240301123005_[0-9a-f]{8}", identity)
    assert generate_identity(now) != identity


def test_reanchor_redirects() -> None:
    manifest = parse_manifest(
        b"module m\n"
        b"replace a => ../lib\n"
        b"replace b => ./vendor/b\n"
        b"replace c => /srv/c\n"
        b"replace d => example.com/d v1.0.0\n"
    )
    count = reanchor_redirects(manifest, "/work/app", "/tmp/ws")
    assert count == 2
    targets = [r.new.path for r in manifest.replaces]
    assert targets == [
        os.path.join("..", "..", "work", "lib"),
        os.path.join("..", "..", "work", "app", "vendor", "b"),
        "/srv/c",
        "example.com/d",
    ]


def test_build_manifest_without_go_mod(workspace, fake_toolchain) -> None:
    base = build_manifest(workspace, ["golang.org/x/text@v0.22.0", "./cmd/tool"])
    assert base is None
    assert workspace.base is None
    manifest = read_manifest(workspace.root_dir)
    assert manifest.module.startswith("modoverlay_")
    assert manifest.replaces == []
    # Only identifiers are fetched
    assert fake_toolchain.fetch_calls == [["golang.org/x/text@v0.22.0"]]


def test_build_manifest_adopts_go_mod(
    workspace,
    fake_toolchain,
    go_module_project,
    project_dir,
) -> None:
    original_content = read_file(go_module_project)
    base = build_manifest(workspace, [])
    assert base is not None
    assert base.original_identity == "example.com/app"
    assert base.root_dir == project_dir
    assert workspace.base == base

    manifest = read_manifest(workspace.root_dir)
    assert manifest.module == base.workspace_identity
    assert manifest.module != "example.com/app"
    assert manifest.module.startswith("modoverlay_")

    requirement = manifest.requirement_for("example.com/app")
    assert requirement is not None
    assert requirement.version == PLACEHOLDER_VERSION
    assert manifest.requirement_for("pkgA") is not None

    lib = manifest.redirects_for("example.com/lib")
    assert len(lib) == 1
    assert os.path.normpath(
        os.path.join(workspace.root_dir, lib[0].new.path)
    ) == os.path.normpath(os.path.join(project_dir, "..", "lib"))

    app = manifest.redirects_for("example.com/app")
    assert len(app) == 1
    assert os.path.normpath(
        os.path.join(workspace.root_dir, app[0].new.path)
    ) == os.path.normpath(project_dir)

    assert read_file(workspace.lock_path) == "pkgA v1.0.0 h1:abc=\n"
    # The original is untouched
    assert read_file(go_module_project) == original_content
    assert fake_toolchain.fetch_calls == []


def test_build_manifest_without_module_statement(
    workspace,
    fake_toolchain,
    project_dir,
) -> None:
    write_tree(project_dir, {"go.mod": "go 1.22\n"})
    fake_toolchain.manifest_location = os.path.join(project_dir, "go.mod")
    with pytest.raises(ManifestParseError):
        build_manifest(workspace, [])


def test_add_redirect_conflict(workspace, fake_toolchain) -> None:
    target = os.path.join(workspace.overlay_dir, "pkgA")
    first = add_redirect(workspace, "pkgA", target)
    assert first == os.path.join(".", "overlay", "pkgA")
    assert add_redirect(workspace, "pkgA", target) == first
    assert fake_toolchain.edit_calls == ["pkgA"]
    with pytest.raises(RedirectConflict):
        add_redirect(workspace, "pkgA", os.path.join(workspace.root_dir, "elsewhere"))


def test_supersedable_redirect_is_replaced_once(workspace, fake_toolchain) -> None:
    source_dir = os.path.join(os.path.dirname(workspace.root_dir), "source")
    add_redirect(workspace, "example.com/app", source_dir, supersedable=True)
    overlay = os.path.join(workspace.overlay_dir, "example.com", "app")
    location = add_redirect(workspace, "example.com/app", overlay)
    assert location == os.path.join(".", "overlay", "example.com", "app")

    redirects = read_manifest(workspace.root_dir).redirects_for("example.com/app")
    assert [r.new.path for r in redirects] == ["./overlay/example.com/app"]
    assert fake_toolchain.edit_calls == ["example.com/app", "example.com/app"]
    with pytest.raises(RedirectConflict):
        add_redirect(workspace, "example.com/app", source_dir)


def test_build_manifest_with_empty_module_path(
    workspace,
    fake_toolchain,
    project_dir,
) -> None:
    write_tree(project_dir, {"go.mod": 'module ""\n\ngo 1.22\n'})
    fake_toolchain.manifest_location = os.path.join(project_dir, "go.mod")
    with pytest.raises(ManifestParseError):
        build_manifest(workspace, [])
