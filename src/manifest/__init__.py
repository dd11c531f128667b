"""Cargo manifest model, parsing and workspace discovery for ab-lint."""

from manifest.errors import (
    AbLintError,
    ManifestParseError,
    UsageScanError,
    WorkspaceError,
)
from manifest.models import (
    CrateManifest,
    DependencyDeclaration,
    DependencyKind,
    SourceSpan,
    TextEdit,
    Workspace,
)
from manifest.parser import load_manifest, parse_manifest
from manifest.spans import SpanIndex
from manifest.workspace import find_workspace_manifest, load_workspace

__all__ = [
    "AbLintError",
    "CrateManifest",
    "DependencyDeclaration",
    "DependencyKind",
    "ManifestParseError",
    "SourceSpan",
    "SpanIndex",
    "TextEdit",
    "UsageScanError",
    "Workspace",
    "WorkspaceError",
    "find_workspace_manifest",
    "load_manifest",
    "load_workspace",
    "parse_manifest",
]
