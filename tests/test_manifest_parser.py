from __future__ import annotations

from pathlib import Path

import pytest

from manifest.errors import ManifestParseError
from manifest.models import DependencyKind
from manifest.parser import load_manifest, parse_manifest

MEMBER = """\
[package]
name = "demo"
version = "0.1.0"

[package.metadata.ab-lint]
ignored = ["openssl-sys"]

[dependencies]
anyhow = "1"
serde = { workspace = true, features = ["derive"], default-features = false }
tokio.workspace = true
tokio.features = ["rt"]
# ab-lint: allow(unused-dependency)
openssl = { version = "0.10", optional = true }

[dependencies.rand]
workspace = true
default_features = true

[dev_dependencies]
pretty_assertions = "1"

[build-dependencies]
cc = "1.0"  # ab-lint: allow(all)

[target.'cfg(unix)'.dependencies]
libc = { version = "0.2", package = "libc" }
"""


def _parse(text: str = MEMBER):
    return parse_manifest(Path("/ws/demo/Cargo.toml"), text)


def _by_name(manifest):
    return {decl.name: decl for decl in manifest.declarations}


def test_all_declaration_shapes_are_collected() -> None:
    manifest = _parse()
    decls = _by_name(manifest)

    assert list(decls) == [
        "anyhow",
        "serde",
        "tokio",
        "openssl",
        "rand",
        "pretty_assertions",
        "cc",
        "libc",
    ]
    assert [decl.order for decl in manifest.declarations] == list(range(8))
    assert decls["anyhow"].version == "1"
    assert decls["pretty_assertions"].kind is DependencyKind.DEV
    assert decls["cc"].kind is DependencyKind.BUILD
    assert decls["libc"].target == "cfg(unix)"
    assert decls["libc"].kind is DependencyKind.NORMAL
    assert decls["libc"].package == "libc"
    assert manifest.package_name == "demo"


def test_inline_declaration_details() -> None:
    serde = _by_name(_parse())["serde"]

    assert serde.workspace
    assert serde.features == ["derive"]
    assert serde.default_features is False
    assert serde.default_features_key == "default-features"
    assert serde.span.line == serde.span.end_line == 10
    assert serde.features_span is not None
    assert MEMBER[serde.features_span.start : serde.features_span.end] == '["derive"]'
    assert serde.default_features_span is not None
    assert serde.default_features_span.line == 10


def test_dotted_keys_form_one_declaration() -> None:
    tokio = _by_name(_parse())["tokio"]

    assert tokio.workspace
    assert tokio.features == ["rt"]
    assert (tokio.span.line, tokio.span.end_line) == (11, 12)
    assert tokio.features_span is not None
    assert tokio.features_span.line == 12


def test_sub_table_declaration_uses_legacy_default_features_key() -> None:
    rand = _by_name(_parse())["rand"]

    assert rand.workspace
    assert rand.default_features is True
    assert rand.default_features_key == "default_features"
    assert (rand.span.line, rand.span.end_line) == (16, 18)


def test_suppression_markers_are_attached() -> None:
    decls = _by_name(_parse())

    assert decls["openssl"].suppressed == frozenset({"unused-dependency"})
    assert decls["openssl"].optional
    assert decls["cc"].is_suppressed("redundant-feature")
    assert decls["anyhow"].suppressed == frozenset()


def test_crate_metadata_is_read() -> None:
    assert _parse().metadata.ignored == ["openssl-sys"]


def test_workspace_dependencies_are_separate_from_declarations() -> None:
    text = """\
[workspace]
members = []

[workspace.dependencies]
serde = { version = "1", features = ["derive"] }
log = "0.4"
"""
    manifest = _parse(text)

    assert manifest.declarations == []
    assert list(manifest.workspace_dependencies) == ["serde", "log"]
    assert manifest.workspace_dependencies["serde"].features == ["derive"]
    assert manifest.workspace_dependencies["log"].default_features is None
    assert not manifest.has_package


def test_invalid_toml_reports_line() -> None:
    with pytest.raises(ManifestParseError) as exc_info:
        _parse("[dependencies]\nserde = \n")

    assert exc_info.value.line == 2
    assert exc_info.value.location() == "/ws/demo/Cargo.toml:2"


def test_features_must_be_strings() -> None:
    with pytest.raises(ManifestParseError, match="array of strings") as exc_info:
        _parse("[dependencies]\n\nserde = { version = \"1\", features = [1] }\n")

    assert exc_info.value.line == 3


def test_default_features_must_be_boolean() -> None:
    with pytest.raises(ManifestParseError, match="must be a boolean"):
        _parse('[dependencies]\nserde = { version = "1", default-features = "no" }\n')


def test_dependency_must_be_string_or_table() -> None:
    with pytest.raises(ManifestParseError, match="version string or a table"):
        _parse("[dependencies]\nserde = 1\n")


def test_unknown_metadata_key_is_a_parse_error() -> None:
    with pytest.raises(ManifestParseError, match="package.metadata.ab-lint"):
        _parse('[package]\nname = "x"\n\n[package.metadata.ab-lint]\nbogus = 1\n')


def test_load_manifest_keeps_line_endings(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    path.write_bytes(b'[dependencies]\r\nserde = "1"\r\n')

    manifest = load_manifest(path)

    assert manifest.text == '[dependencies]\r\nserde = "1"\r\n'
    assert manifest.declarations[0].span.line == 2


def test_load_manifest_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ManifestParseError, match="cannot read manifest"):
        load_manifest(tmp_path / "Cargo.toml")
