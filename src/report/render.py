"""Text and JSON rendering of lint results."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson

from utils import display_path

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from rules.diagnostics import Diagnostic, ManifestIssue

FIX_HINT = "hint: to fix run with --fix"


def format_diagnostic(diag: Diagnostic, cwd: Path | None = None) -> str:
    return (
        f"{display_path(diag.manifest, cwd)}:{diag.span.line}: "
        f"{diag.kind.value}: {diag.message}"
    )


def format_issue(issue: ManifestIssue, cwd: Path | None = None) -> str:
    location = display_path(issue.path, cwd)
    if issue.line is not None:
        location = f"{location}:{issue.line}"
    return f"{location}: {issue.severity}: {issue.message}"


def render_text(
    diagnostics: Iterable[Diagnostic], cwd: Path | None = None
) -> list[str]:
    return [format_diagnostic(diag, cwd) for diag in diagnostics]


def _diagnostic_payload(diag: Diagnostic, cwd: Path | None) -> dict[str, Any]:
    payload = diag.model_dump(mode="json")
    payload["manifest"] = display_path(diag.manifest, cwd)
    payload["fixable"] = diag.edit is not None
    return payload


def render_json(
    diagnostics: Iterable[Diagnostic],
    issues: Iterable[ManifestIssue],
    cwd: Path | None = None,
    *,
    fixed: Iterable[str] = (),
) -> bytes:
    """Serialize a run's outcome as one JSON document.

    The output is byte-stable for identical input: keys are sorted and the
    lists arrive already ordered.
    """
    issue_payloads = []
    for issue in issues:
        payload = issue.to_dict()
        payload["path"] = display_path(issue.path, cwd)
        issue_payloads.append(payload)

    document = {
        "diagnostics": [_diagnostic_payload(diag, cwd) for diag in diagnostics],
        "issues": issue_payloads,
        "fixed": [display_path(path, cwd) for path in fixed],
    }
    return orjson.dumps(document, option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2)


__all__ = [
    "FIX_HINT",
    "format_diagnostic",
    "format_issue",
    "render_json",
    "render_text",
]
