from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

import fix.apply as apply_module
from fix.apply import apply_edits, plan_fixes, unified_diff, write_atomic, write_fixes
from fix.edits import remove_array_items, remove_entry
from manifest.models import DependencyKind
from manifest.parser import parse_manifest
from manifest.spans import SpanIndex
from rules.diagnostics import Diagnostic, LintKind
from rules.lints import (
    REMOVABLE_KEYS,
    check_redundant_default_features,
    check_redundant_features,
    check_unused_dependencies,
)
from scan.usage import UsageFacts

ROOT = """\
[workspace]
members = ["member"]

[workspace.dependencies]
serde = { version = "1", features = ["derive", "std"] }
tokio = { version = "1", default-features = false }
"""


def _deps():
    return parse_manifest(Path("/ws/Cargo.toml"), ROOT).workspace_dependencies


def _diagnostics(path: Path, text: str) -> list[Diagnostic]:
    manifest = parse_manifest(path, text)
    return [
        *check_redundant_features(manifest, _deps()),
        *check_redundant_default_features(manifest, _deps()),
    ]


def test_single_feature_fix_is_minimal() -> None:
    text = (
        "[package]\n"
        'name = "m"  # keep me\n'
        "\n"
        "[dependencies]\n"
        'serde = { workspace = true, features = ["derive", "alloc"] }  # note\n'
        'other = "1"\n'
    )

    (diag,) = _diagnostics(Path("/ws/member/Cargo.toml"), text)

    assert diag.edit is not None
    assert diag.edit.original == '"derive", '
    assert diag.edit.replacement == ""
    fixed = apply_edits(text, [diag.edit])
    assert fixed == text.replace('["derive", "alloc"]', '["alloc"]')


def test_element_alone_on_its_line_removes_the_line() -> None:
    text = (
        "[dependencies.serde]\n"
        "workspace = true\n"
        "features = [\n"
        '    "alloc",\n'
        '    "std",  # workspace has it\n'
        '    "rc",\n'
        "]\n"
    )
    index = SpanIndex.build(text)
    entry = index.entries[("dependencies", "serde", "features")]

    fixed = apply_edits(text, [remove_array_items(index, entry, [1])])

    assert fixed == text.replace('    "std",  # workspace has it\n', "")


def test_element_with_marker_comment_keeps_the_comment() -> None:
    text = (
        "[dependencies.serde]\n"
        "workspace = true\n"
        "features = [\n"
        '    "std",  # ab-lint: allow(unused-dependency)\n'
        '    "rc",\n'
        "]\n"
    )
    index = SpanIndex.build(text)
    entry = index.entries[("dependencies", "serde", "features")]

    fixed = apply_edits(text, [remove_array_items(index, entry, [0])])

    assert "    # ab-lint: allow(unused-dependency)\n" in fixed
    assert '"std"' not in fixed


def test_removed_line_keeps_marker_comment() -> None:
    text = (
        "[dependencies.tokio]\n"
        "default-features = false  # ab-lint: allow(unused-dependency)\n"
        "workspace = true\n"
    )

    (diag,) = _diagnostics(Path("/ws/member/Cargo.toml"), text)

    assert diag.edit is not None
    fixed = apply_edits(text, [diag.edit])
    assert fixed == (
        "[dependencies.tokio]\n"
        "# ab-lint: allow(unused-dependency)\n"
        "workspace = true\n"
    )
    reparsed = parse_manifest(Path("/ws/member/Cargo.toml"), fixed)
    assert reparsed.declarations[0].is_suppressed("unused-dependency")


def _suppressed(text: str) -> dict[str, frozenset[str]]:
    manifest = parse_manifest(Path("/ws/member/Cargo.toml"), text)
    return {decl.name: decl.suppressed for decl in manifest.declarations}


def _unused(text: str) -> list[str]:
    manifest = parse_manifest(Path("/ws/member/Cargo.toml"), text)
    usage = UsageFacts(used={kind: frozenset() for kind in DependencyKind})
    return [diag.dependency for diag in check_unused_dependencies(manifest, usage)]


def test_marker_on_last_line_moves_to_the_kept_line() -> None:
    text = (
        "[dependencies]\n"
        "tokio.workspace = true\n"
        "tokio.default-features = false  # ab-lint: allow(unused-dependency)\n"
        'rand = "0.8"\n'
    )

    (diag,) = _diagnostics(Path("/ws/member/Cargo.toml"), text)

    assert diag.edit is not None
    fixed = apply_edits(text, [diag.edit])
    assert fixed == (
        "[dependencies]\n"
        "tokio.workspace = true  # ab-lint: allow(unused-dependency)\n"
        'rand = "0.8"\n'
    )
    assert _suppressed(fixed) == _suppressed(text)
    assert _unused(fixed) == _unused(text) == ["rand"]


def test_marker_line_above_last_entry_moves_to_the_kept_line() -> None:
    text = (
        "[dependencies]\n"
        "tokio.workspace = true  # runtime\n"
        "# ab-lint: allow(unused-dependency)\n"
        "tokio.default-features = false\n"
        'rand = "0.8"\n'
    )

    (diag,) = _diagnostics(Path("/ws/member/Cargo.toml"), text)

    assert diag.edit is not None
    fixed = apply_edits(text, [diag.edit])
    assert fixed == (
        "[dependencies]\n"
        "tokio.workspace = true  # runtime  # ab-lint: allow(unused-dependency)\n"
        'rand = "0.8"\n'
    )
    assert _suppressed(fixed) == _suppressed(text)


def test_marker_without_a_kept_line_yields_no_edit() -> None:
    text = (
        "[dependencies]\n"
        "tokio.default-features = false  # ab-lint: allow(unused-dependency)\n"
        'rand = "0.8"\n'
    )
    index = SpanIndex.build(text)
    entry = index.entries[("dependencies", "tokio", "default-features")]

    assert remove_entry(index, entry, removable=REMOVABLE_KEYS) is None


def test_last_line_without_newline_is_removed_cleanly() -> None:
    text = "[dependencies.tokio]\nworkspace = true\ndefault-features = false"
    index = SpanIndex.build(text)

    edit = remove_entry(index, index.entries[("dependencies", "tokio", "default-features")])

    assert apply_edits(text, [edit]) == "[dependencies.tokio]\nworkspace = true"


def test_overlapping_edits_become_one_conflict(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    text = '[dependencies]\nserde = { workspace = true, features = ["derive"] }\n'
    path.write_text(text, encoding="utf-8")
    index = SpanIndex.build(text)
    start = text.index("serde")
    span = index.span(start, start + 10)
    diagnostics = [
        Diagnostic(
            kind=LintKind.REDUNDANT_FEATURE,
            manifest=str(path),
            span=span,
            message="a",
            dependency="serde",
            edit=index.edit(start, start + 10, ""),
        ),
        Diagnostic(
            kind=LintKind.REDUNDANT_DEFAULT_FEATURES,
            manifest=str(path),
            span=span,
            message="b",
            dependency="serde",
            edit=index.edit(start + 5, start + 15, ""),
        ),
    ]

    result = plan_fixes(diagnostics, {str(path): text})

    assert result.fixes == []
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.kind is LintKind.FIX_CONFLICT
    assert conflict.edit is None
    assert "serde" in conflict.message
    assert write_fixes(result) == []
    assert path.read_text(encoding="utf-8") == text


def test_stale_edit_is_a_conflict() -> None:
    text = '[dependencies]\nserde = "1"\n'
    index = SpanIndex.build(text)
    edit = index.edit(0, 3, "")
    changed = "#" + text

    with pytest.raises(ValueError, match="does not match"):
        apply_edits(changed, [edit])


def test_rewrite_that_breaks_toml_is_not_written(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    text = '[dependencies]\nserde = "1"\n'
    index = SpanIndex.build(text)
    start = text.index("=")
    diag = Diagnostic(
        kind=LintKind.REDUNDANT_FEATURE,
        manifest=str(path),
        span=index.span(start, start + 1),
        message="x",
        edit=index.edit(start, start + 1, ""),
    )

    result = plan_fixes([diag], {str(path): text})

    assert result.fixes == []
    assert len(result.issues) == 1
    assert "would not parse" in result.issues[0].message


def test_fix_is_written_atomically(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    text = "[dependencies]\ntokio = { workspace = true, default-features = false }\n"
    path.write_text(text, encoding="utf-8")
    path.chmod(0o640)

    result = plan_fixes(_diagnostics(path, text), {str(path): text})
    issues = write_fixes(result)

    assert issues == []
    assert result.fixes[0].written
    assert path.read_text(encoding="utf-8") == (
        "[dependencies]\ntokio = { workspace = true }\n"
    )
    assert stat.S_IMODE(path.stat().st_mode) == 0o640
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Cargo.toml"]


def test_fix_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    text = (
        "[dependencies]\n"
        'serde = { workspace = true, features = ["derive", "rc"] }\n'
        "tokio = { workspace = true, default-features = false }\n"
    )
    path.write_text(text, encoding="utf-8")

    first = plan_fixes(_diagnostics(path, text), {str(path): text})
    write_fixes(first)
    fixed = path.read_text(encoding="utf-8")

    assert _diagnostics(path, fixed) == []
    second = plan_fixes(_diagnostics(path, fixed), {str(path): fixed})
    assert second.fixes == []
    assert path.read_text(encoding="utf-8") == fixed


def test_dry_run_writes_nothing_and_renders_diff(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    text = "[dependencies]\ntokio = { workspace = true, default-features = false }\n"
    path.write_text(text, encoding="utf-8")

    result = plan_fixes(_diagnostics(path, text), {str(path): text})
    issues = write_fixes(result, dry_run=True)

    assert issues == []
    assert not result.fixes[0].written
    assert path.read_text(encoding="utf-8") == text
    diff = unified_diff(result.fixes[0], label="member/Cargo.toml")
    assert "--- a/member/Cargo.toml\n" in diff
    assert "-tokio = { workspace = true, default-features = false }\n" in diff
    assert "+tokio = { workspace = true }\n" in diff


def test_write_failure_is_reported_and_cleans_up(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "Cargo.toml"
    text = "[dependencies]\ntokio = { workspace = true, default-features = false }\n"
    path.write_text(text, encoding="utf-8")

    def _fail(src: object, dst: object) -> None:
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(apply_module.os, "replace", _fail)
    result = plan_fixes(_diagnostics(path, text), {str(path): text})

    issues = write_fixes(result)

    assert len(issues) == 1
    assert issues[0].path == path
    assert "cannot write fixes" in issues[0].message
    assert not result.fixes[0].written
    assert path.read_text(encoding="utf-8") == text
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Cargo.toml"]


def test_write_atomic_preserves_crlf(tmp_path: Path) -> None:
    path = tmp_path / "Cargo.toml"
    path.write_bytes(b"[package]\r\n")

    write_atomic(path, '[package]\r\nname = "x"\r\n')

    assert path.read_bytes() == b'[package]\r\nname = "x"\r\n'
    assert os.listdir(tmp_path) == ["Cargo.toml"]
