"""Document parser: shape validation and translation into domain objects."""

from __future__ import annotations

import pytest

from lib_layered_env.adapters.document.parser import parse_document, parse_package, parse_package_set
from lib_layered_env.domain.errors import InvalidDocument
from lib_layered_env.domain.model import DEFAULT_PLATFORMS, Add, Replace, Shadow


def minimal(**outputs) -> dict:
    return {
        "sources": {"nixpkgs": {"url": "path:nixpkgs.toml", "rev": "abc123"}},
        "outputs": outputs or {"default": {"packages": ["eza"]}},
    }


def test_sources_and_default_output_source() -> None:
    document = parse_document(minimal(), path="devenv.toml")
    source = document.sources["nixpkgs"]
    assert (source.locator.scheme, source.locator.location, source.locator.revision) == ("path", "nixpkgs.toml", "abc123")
    assert document.outputs["default"].source == "nixpkgs"
    assert document.platforms == DEFAULT_PLATFORMS
    assert document.path == "devenv.toml"


def test_source_may_be_a_bare_url_or_follow_another() -> None:
    data = minimal()
    data["sources"]["pinned"] = "path:pinned.toml"
    data["sources"]["alias"] = {"follows": "nixpkgs"}
    document = parse_document(data)
    assert document.sources["pinned"].locator.location == "pinned.toml"
    assert document.sources["alias"].follows == "nixpkgs"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({"url": "path:a", "follows": "nixpkgs"}, "exactly one"),
        ({}, "exactly one"),
        ({"follows": "ghost"}, "undeclared"),
    ],
)
def test_invalid_sources(body, message) -> None:
    data = minimal()
    data["sources"]["broken"] = body
    with pytest.raises(InvalidDocument, match=message):
        parse_document(data)


def test_missing_required_tables() -> None:
    with pytest.raises(InvalidDocument, match="sources"):
        parse_document({"outputs": {}})
    with pytest.raises(InvalidDocument, match="outputs"):
        parse_document({"sources": {"nixpkgs": "path:x"}})


def test_output_startup_order_and_derivations() -> None:
    output = {
        "packages": ["eza", "fd"],
        "derive": {"LD_LIBRARY_PATH": "library-path", "CPATH": {"rule": "include-path"}},
        "env": {"RUST_BACKTRACE": 1},
        "startup": [{"name": "banner", "text": "echo ready"}],
        "aliases": {"ls": "eza", "find": "fd"},
        "shell_hook": "export PS1='(dev) '",
    }
    spec = parse_document(minimal(default=output)).outputs["default"]
    assert [(item.name, item.rule, item.value) for item in spec.derive] == [
        ("LD_LIBRARY_PATH", "library-path", None),
        ("CPATH", "include-path", None),
        ("RUST_BACKTRACE", "literal", "1"),
    ]
    assert [action.name for action in spec.startup] == ["banner", "alias:ls", "alias:find", "shell_hook"]
    assert spec.startup[1].text == "alias ls=eza"


def test_unknown_derivation_rule_names_the_key() -> None:
    with pytest.raises(InvalidDocument, match="outputs.default.derive.X"):
        parse_document(minimal(default={"packages": [], "derive": {"X": "magic"}}))


def test_qualified_package_must_name_declared_source() -> None:
    with pytest.raises(InvalidDocument, match="ghost"):
        parse_document(minimal(default={"packages": ["ghost:eza"]}))


def test_overlays_explicit_ops_then_shorthand_tables() -> None:
    data = minimal()
    data["overlays"] = [
        {
            "name": "pins",
            "base": "nixpkgs",
            "ops": [
                {"op": "add", "package": {"name": "tool", "version": "1.2", "prefix": "/store/tool"}},
                {"op": "replace", "name": "zlib", "set": {"version": "1.3.1"}},
            ],
            "shadow": {"cc": "compiler"},
        }
    ]
    [overlay] = parse_document(data).overlays
    kinds = [type(op) for op in overlay.ops]
    assert kinds == [Add, Replace, Shadow]
    assert overlay.ops[0].package.lib_dir == "/store/tool/lib"
    assert overlay.touched() == frozenset({"tool", "zlib", "cc"})


def test_overlay_table_form_and_import() -> None:
    data = minimal()
    data["sources"]["rust-overlay"] = "path:rust.toml"
    data["overlays"] = {"rust": {"base": "nixpkgs", "from": "rust-overlay"}}
    [overlay] = parse_document(data).overlays
    assert (overlay.name, overlay.base, overlay.import_from, overlay.ops) == ("rust", "nixpkgs", "rust-overlay", ())


@pytest.mark.parametrize(
    "overlay",
    [
        {"name": "x", "base": "ghost"},
        {"name": "x", "from": "ghost"},
        {"name": "x", "ops": [{"op": "remove", "name": "eza"}]},
        {"name": "x", "replace": {"eza": {"name": "other"}}},
    ],
)
def test_invalid_overlays(overlay) -> None:
    data = minimal()
    data["overlays"] = [overlay]
    with pytest.raises(InvalidDocument):
        parse_document(data)



def test_replace_platforms_must_be_a_list() -> None:
    data = minimal()
    data["overlays"] = [{"name": "gl", "replace": {"libGL": {"platforms": "x86_64-linux"}}}]
    with pytest.raises(InvalidDocument, match="platforms"):
        parse_document(data)
    data["overlays"] = [{"name": "gl", "replace": {"libGL": {"platforms": ["x86_64-linux"]}}}]
    [overlay] = parse_document(data).overlays
    assert overlay.ops[0].changes == {"platforms": ("x86_64-linux",)}

def test_platforms_are_normalised() -> None:
    data = minimal()
    data["platforms"] = ["amd64-linux", "arm64-darwin"]
    assert parse_document(data).platforms == ("x86_64-linux", "aarch64-darwin")
    data["platforms"] = ["linux"]
    with pytest.raises(InvalidDocument, match="platforms"):
        parse_document(data)


def test_package_prefix_and_explicit_dirs() -> None:
    package = parse_package("gl", {"prefix": "/store/gl/", "lib_dir": "/opt/gl/lib64", "platforms": ["x86_64-linux"]})
    assert (package.lib_dir, package.include_dir, package.bin_dir) == ("/opt/gl/lib64", "/store/gl/include", "/store/gl/bin")
    assert package.platforms == ("x86_64-linux",)
    assert package.version == "0"


@pytest.mark.parametrize(
    "body",
    [
        {"version": "1"},
        {"prefix": "/p", "colour": "red"},
        {"prefix": "/p", "variants": {"aarch64-linux": {"name": "other"}}},
        {"prefix": "/p", "platforms": "x86_64-linux"},
    ],
)
def test_invalid_packages(body) -> None:
    with pytest.raises(InvalidDocument):
        parse_package("broken", body)


def test_package_set_requires_packages_table() -> None:
    with pytest.raises(InvalidDocument, match="set.toml"):
        parse_package_set({"pkgs": {}}, origin="set.toml")
