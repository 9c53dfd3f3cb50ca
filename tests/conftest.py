import os
import textwrap
from typing import Dict

import pytest

from modoverlay.context import OverlayContext
from modoverlay.workspace import Workspace
from tutil import FakeToolchain, write_tree

# Keep the output of failing tests readable
os.environ["MODOVERLAY_COLORS"] = "never"


@pytest.fixture()
def module_sources(tmp_path) -> Dict[str, str]:
    mod_cache = tmp_path / "modcache"
    sources = {
        "pkgA": {
            "go.mod": "module pkgA\n\ngo 1.22\n",
            "a.go": "package pkgA\n",
            "sub/file.ext": "original\n",
        },
        "pkgB": {
            "go.mod": "module pkgB\n\ngo 1.22\n",
            "a.ext": "original a\n",
            "b/keep.ext": "kept\n",
            ".git/HEAD": "ref: refs/heads/main\n",
        },
        "golang.org/x/text": {
            "go.mod": "module golang.org/x/text\n\ngo 1.22\n",
            "language/language.go": "package language\n",
        },
    }
    result = {}
    for module, files in sources.items():
        root = str(mod_cache.joinpath(*module.split("/")))
        write_tree(root, files)
        result[module] = root
    return result


@pytest.fixture()
def fake_toolchain(module_sources) -> FakeToolchain:
    return FakeToolchain(module_sources)


@pytest.fixture()
def project_dir(tmp_path) -> str:
    path = tmp_path / "project"
    path.mkdir()
    return str(path)


@pytest.fixture()
def overlay_context(tmp_path, project_dir) -> OverlayContext:
    temp_dir = tmp_path / "workspaces"
    temp_dir.mkdir()
    return OverlayContext(working_dir=project_dir, temp_dir=str(temp_dir))


@pytest.fixture()
def go_module_project(project_dir, fake_toolchain) -> str:
    """A project with its own go.mod, reported as governing by the fake toolchain"""
    write_tree(
        project_dir,
        {
            "go.mod": textwrap.dedent(
                """\
                module example.com/app

                go 1.22

                require pkgA v1.0.0

                replace example.com/lib => ../lib
                """
            ),
            "go.sum": "pkgA v1.0.0 h1:abc=\n",
            "cmd/tool/main.go": "package main\n",
        },
    )
    manifest_path = os.path.join(project_dir, "go.mod")
    fake_toolchain.manifest_location = manifest_path
    return manifest_path


@pytest.fixture()
def workspace(overlay_context, fake_toolchain) -> Workspace:
    ws = Workspace.allocate(overlay_context, fake_toolchain)
    fake_toolchain.init_manifest(ws.root_dir, "modoverlay_test")
    return ws
