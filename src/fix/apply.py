"""Apply diagnostic edits to manifest texts and write them back atomically."""

from __future__ import annotations

import difflib
import os
import shutil
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from rules.diagnostics import Diagnostic, LintKind, ManifestIssue

if TYPE_CHECKING:
    from collections.abc import Iterable

    from manifest.models import TextEdit

log = structlog.get_logger("ab_lint.fix")


@dataclass
class ManifestFix:
    """The rewritten text of one manifest and the diagnostics it resolves."""

    path: Path
    original: str
    fixed: str
    applied: list[Diagnostic] = field(default_factory=list)
    written: bool = False

    @property
    def changed(self) -> bool:
        return self.fixed != self.original


@dataclass
class FixResult:
    fixes: list[ManifestFix] = field(default_factory=list)
    conflicts: list[Diagnostic] = field(default_factory=list)
    issues: list[ManifestIssue] = field(default_factory=list)

    def resolved(self) -> set[int]:
        """Identities of the diagnostics whose edits were applied and kept."""
        return {id(diag) for fix in self.fixes for diag in fix.applied}


def apply_edits(text: str, edits: Iterable[TextEdit]) -> str:
    """Apply non-overlapping edits to ``text`` in descending span order.

    Raises:
        ValueError: If two edits overlap or an edit no longer matches the text.
    """
    ordered = sorted(edits, key=lambda edit: edit.span.start, reverse=True)
    for later, earlier in zip(ordered, ordered[1:], strict=False):
        if earlier.span.overlaps(later.span):
            msg = (
                f"edits at lines {earlier.span.line} and {later.span.line} overlap"
            )
            raise ValueError(msg)

    for edit in ordered:
        start, end = edit.span.start, edit.span.end
        if text[start:end] != edit.original:
            msg = f"edit at line {edit.span.line} does not match the manifest text"
            raise ValueError(msg)
        text = text[:start] + edit.replacement + text[end:]
    return text


def _conflict(manifest: str, diagnostics: list[Diagnostic], reason: str) -> Diagnostic:
    first = min(diagnostics, key=lambda diag: diag.span.start)
    names = sorted({diag.dependency for diag in diagnostics if diag.dependency})
    return Diagnostic(
        kind=LintKind.FIX_CONFLICT,
        manifest=manifest,
        span=first.span,
        message=(
            f"{reason}; manifest left unchanged"
            + (f" (dependencies: {', '.join(names)})" if names else "")
        ),
        order=first.order,
    )


def plan_fixes(diagnostics: Iterable[Diagnostic], texts: dict[str, str]) -> FixResult:
    """Compute the fixed text of every manifest that has applicable edits.

    Edits are grouped by manifest. Overlapping edits in one manifest yield a
    single ``fix-conflict`` diagnostic for it and no fix; a rewrite that no
    longer parses as TOML is dropped with an error issue.
    """
    by_manifest: dict[str, list[Diagnostic]] = {}
    for diag in diagnostics:
        if diag.edit is not None and diag.manifest in texts:
            by_manifest.setdefault(diag.manifest, []).append(diag)

    result = FixResult()
    for manifest in sorted(by_manifest):
        group = by_manifest[manifest]
        original = texts[manifest]
        try:
            fixed = apply_edits(original, [diag.edit for diag in group if diag.edit])
        except ValueError as exc:
            log.info("fix.conflict", manifest=manifest, reason=str(exc))
            result.conflicts.append(_conflict(manifest, group, str(exc)))
            continue

        try:
            tomllib.loads(fixed)
        except tomllib.TOMLDecodeError as exc:
            result.issues.append(
                ManifestIssue(
                    path=Path(manifest),
                    message=f"fixed manifest would not parse, not written: {exc}",
                )
            )
            continue

        result.fixes.append(
            ManifestFix(
                path=Path(manifest), original=original, fixed=fixed, applied=group
            )
        )
    return result


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers never see a partial file."""
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    tmp_path = Path(handle.name)
    try:
        with handle:
            handle.write(text)
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_fixes(result: FixResult, *, dry_run: bool = False) -> list[ManifestIssue]:
    """Write every changed manifest; return one issue per failed write."""
    issues: list[ManifestIssue] = []
    for fix in result.fixes:
        if not fix.changed or dry_run:
            continue
        try:
            write_atomic(fix.path, fix.fixed)
        except OSError as exc:
            log.warning("fix.write_failed", manifest=str(fix.path), error=str(exc))
            issues.append(
                ManifestIssue(path=fix.path, message=f"cannot write fixes: {exc}")
            )
            continue
        fix.written = True
        log.info("fix.written", manifest=str(fix.path), edits=len(fix.applied))
    return issues


def unified_diff(fix: ManifestFix, *, label: str | None = None) -> str:
    name = label or str(fix.path)
    lines = difflib.unified_diff(
        fix.original.splitlines(keepends=True),
        fix.fixed.splitlines(keepends=True),
        fromfile=f"a/{name}",
        tofile=f"b/{name}",
    )
    return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


__all__ = [
    "FixResult",
    "ManifestFix",
    "apply_edits",
    "plan_fixes",
    "unified_diff",
    "write_atomic",
    "write_fixes",
]
