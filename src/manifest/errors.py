"""Exception hierarchy for manifest discovery and parsing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class AbLintError(Exception):
    """Base class for errors raised by ab-lint."""


class WorkspaceError(AbLintError):
    """Raised when the workspace cannot be discovered or is inconsistent.

    Fatal for the whole run: nothing can be analyzed without a workspace root
    and its member list.
    """


class ManifestParseError(AbLintError):
    """Raised when a single manifest cannot be read or parsed."""

    def __init__(self, path: Path, message: str, *, line: int | None = None) -> None:
        self.path = path
        self.message = message
        self.line = line
        super().__init__(self.location() + ": " + message)

    def location(self) -> str:
        if self.line is None:
            return str(self.path)
        return f"{self.path}:{self.line}"


class SpanIndexError(AbLintError):
    """Raised when the span indexer meets text it cannot position."""

    def __init__(self, message: str, *, offset: int) -> None:
        self.offset = offset
        super().__init__(message)


class UsageScanError(AbLintError):
    """Raised when a crate's sources cannot be read."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


__all__ = [
    "AbLintError",
    "ManifestParseError",
    "SpanIndexError",
    "UsageScanError",
    "WorkspaceError",
]
