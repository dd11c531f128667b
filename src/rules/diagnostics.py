"""Diagnostic and issue records produced by a lint run."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel

from manifest.models import DependencyKind, SourceSpan, TextEdit

if TYPE_CHECKING:
    from pathlib import Path


class LintKind(str, Enum):
    """Diagnostic kinds, in the order they sort within one declaration."""

    REDUNDANT_FEATURE = "redundant-feature"
    REDUNDANT_DEFAULT_FEATURES = "redundant-default-features"
    UNUSED_DEPENDENCY = "unused-dependency"
    FIX_CONFLICT = "fix-conflict"


_KIND_RANK = {kind: rank for rank, kind in enumerate(LintKind)}


class Diagnostic(BaseModel):
    """A finding against one manifest, optionally carrying a safe edit."""

    kind: LintKind
    manifest: str
    span: SourceSpan
    message: str
    dependency: str | None = None
    dependency_kind: DependencyKind | None = None
    order: int = 0
    edit: TextEdit | None = None

    def location(self) -> str:
        return f"{self.manifest}:{self.span.line}"

    def sort_key(self) -> tuple[str, int, int, int]:
        return (self.manifest, self.order, _KIND_RANK[self.kind], self.span.start)


Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class ManifestIssue:
    """A problem that is not a lint finding: parse, scan or write failures."""

    path: Path
    message: str
    line: int | None = None
    severity: Severity = "error"

    def location(self) -> str:
        if self.line is None:
            return str(self.path)
        return f"{self.path}:{self.line}"

    def sort_key(self) -> tuple[str, int, str]:
        return (str(self.path), self.line or 0, self.message)

    def to_dict(self) -> dict[str, object]:
        return {
            "path": str(self.path),
            "line": self.line,
            "severity": self.severity,
            "message": self.message,
        }


__all__ = ["Diagnostic", "LintKind", "ManifestIssue", "Severity"]
