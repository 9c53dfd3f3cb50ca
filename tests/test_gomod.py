import textwrap

import pytest

from modoverlay.exceptions import ManifestParseError
from modoverlay.gomod import (
    Manifest,
    ModuleVersion,
    format_manifest,
    iter_directory_redirects,
    parse_manifest,
)

GO_MOD = textwrap.dedent(
    """\
    // The application
    module example.com/app

    go 1.22

    toolchain go1.22.3

    require (
        golang.org/x/text v0.22.0
        pkgA v1.0.0 // indirect
    )

    require "example.com/quoted path" v1.0.0

    exclude golang.org/x/net v0.1.0

    retract (
        v1.0.1 // broken
    )

    replace (
        example.com/lib => ../lib
        example.com/abs v1.2.0 => /srv/abs
        example.com/fork => example.com/fork2 v1.3.0
    )
    """
).encode("utf-8")


def test_parse_manifest() -> None:
    manifest = parse_manifest(GO_MOD)
    assert manifest.module == "example.com/app"
    assert manifest.go == "1.22"
    assert manifest.toolchain == "go1.22.3"

    assert [(r.module, r.version, r.indirect) for r in manifest.requires] == [
        ("golang.org/x/text", "v0.22.0", False),
        ("pkgA", "v1.0.0", True),
        ("example.com/quoted path", "v1.0.0", False),
    ]
    assert [(d.verb, d.tokens, d.comment) for d in manifest.other] == [
        ("exclude", ["golang.org/x/net", "v0.1.0"], ""),
        ("retract", ["v1.0.1"], "broken"),
    ]

    replaces = manifest.replaces
    assert replaces[0].old == ModuleVersion("example.com/lib")
    assert replaces[0].new == ModuleVersion("../lib")
    assert replaces[1].old == ModuleVersion("example.com/abs", "v1.2.0")
    assert replaces[2].new == ModuleVersion("example.com/fork2", "v1.3.0")
    assert [str(r.new) for r in iter_directory_redirects(manifest)] == [
        "../lib",
        "/srv/abs",
    ]


def test_format_round_trip() -> None:
    manifest = parse_manifest(GO_MOD)
    formatted = format_manifest(manifest)
    reparsed = parse_manifest(formatted)
    assert format_manifest(reparsed) == formatted
    assert sorted(r.module for r in reparsed.requires) == sorted(
        r.module for r in manifest.requires
    )
    assert reparsed.replaces == manifest.replaces
    assert reparsed.other == manifest.other

    text = formatted.decode("utf-8")
    assert text.startswith("module example.com/app\n")
    assert 'require "example.com/quoted path" v1.0.0' not in text
    assert '\t"example.com/quoted path" v1.0.0\n' in text
    assert "\tpkgA v1.0.0 // indirect\n" not in text
    assert "require pkgA v1.0.0 // indirect\n" in text
    assert "\texample.com/lib => ../lib\n" in text


def test_format_new_manifest() -> None:
    manifest = Manifest(module="modoverlay_x", go="1.22")
    manifest.add_requirement("example.com/app", "v0.0.0")
    manifest.add_requirement("example.com/app", "v0.0.0")
    manifest.set_redirect(ModuleVersion("example.com/app"), ModuleVersion("../app"))
    assert format_manifest(manifest) == textwrap.dedent(
        """\
        module modoverlay_x

        go 1.22

        require example.com/app v0.0.0

        replace example.com/app => ../app
        """
    ).encode("utf-8")


def test_set_redirect_supersedes() -> None:
    manifest = parse_manifest(GO_MOD)
    manifest.set_redirect(
        ModuleVersion("example.com/abs"), ModuleVersion("./overlay/abs")
    )
    redirects = manifest.redirects_for("example.com/abs")
    assert len(redirects) == 1
    assert redirects[0].new.path == "./overlay/abs"
    assert len(manifest.replaces) == 3


def test_empty_block() -> None:
    manifest = parse_manifest(b"module m\n\nrequire ()\n")
    assert manifest.module == "m"
    assert manifest.requires == []


@pytest.mark.parametrize(
    "content",
    [
        b"module a\nmodule b\n",
        b"module\n",
        b"module m\nrequire (\n  a v1.0.0\n",
        b"module m\nrequire a\n",
        b"module m\nreplace a b\n",
        b"module m\nreplace a => b\n",
        b"module m\ngo (\n)\n",
        b'module "m\n',
        b"module m\n\xff\n",
    ],
)
def test_parse_errors(content: bytes) -> None:
    with pytest.raises(ManifestParseError):
        parse_manifest(content)


def test_format_normalizes_layout() -> None:
    content = textwrap.dedent(
        """\
        module example.com/app // Deprecated: use example.com/app/v2

        require pkgA v1.0.0

        // Broken release
        retract v0.9.0 // contains a typo

        require (
        \tpkgB v1.0.0 // indirect
        \tpkgC v1.2.0
        )
        """
    ).encode()
    assert format_manifest(parse_manifest(content)) == textwrap.dedent(
        """\
        module example.com/app

        require (
        \tpkgA v1.0.0
        \tpkgC v1.2.0
        )

        require pkgB v1.0.0 // indirect

        retract v0.9.0 // contains a typo
        """
    ).encode()
