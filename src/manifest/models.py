"""Dependency declaration models for Cargo manifests.

A ``CrateManifest`` is a structured view over one manifest's text: the
declarations are read from the parsed TOML, and each carries spans pointing
back into the untouched text held alongside its ``SpanIndex``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from utils import crate_ident

if TYPE_CHECKING:
    from pathlib import Path

    from manifest.spans import SpanIndex

MANIFEST_NAME = "Cargo.toml"


class DependencyKind(str, Enum):
    """Dependency group a declaration belongs to."""

    NORMAL = "normal"
    DEV = "dev"
    BUILD = "build"

    @property
    def label(self) -> str:
        if self is DependencyKind.NORMAL:
            return "dependency"
        return f"{self.value}-dependency"


class SourceSpan(BaseModel):
    """Half-open character range within a manifest's text."""

    start: int
    end: int
    line: int
    end_line: int

    def overlaps(self, other: SourceSpan) -> bool:
        return self.start < other.end and other.start < self.end


class TextEdit(BaseModel):
    """Replace ``span`` (which currently reads ``original``) with ``replacement``."""

    span: SourceSpan
    replacement: str
    original: str


class DependencyDeclaration(BaseModel):
    """One dependency entry, owned by exactly one manifest."""

    manifest: str
    name: str
    kind: DependencyKind
    key_path: tuple[str, ...]
    span: SourceSpan
    order: int = 0
    package: str | None = None
    target: str | None = None
    version: str | None = None
    features: list[str] = Field(default_factory=list)
    default_features: bool | None = None
    default_features_key: str | None = None
    optional: bool = False
    workspace: bool = False
    features_span: SourceSpan | None = None
    default_features_span: SourceSpan | None = None
    suppressed: frozenset[str] = Field(default_factory=frozenset)

    @property
    def ident(self) -> str:
        """Identifier the crate is referenced by in Rust source."""
        return crate_ident(self.name)

    def is_suppressed(self, kind: str) -> bool:
        return kind in self.suppressed or "all" in self.suppressed


class CrateMetadata(BaseModel):
    """The ``[package.metadata.ab-lint]`` table of a member crate."""

    model_config = ConfigDict(extra="forbid")

    ignored: list[str] = Field(
        default_factory=list,
        description="Dependencies exempt from the unused-dependency check",
    )


@dataclass
class CrateManifest:
    path: Path
    text: str
    index: SpanIndex
    data: dict[str, Any]
    declarations: list[DependencyDeclaration] = field(default_factory=list)
    workspace_dependencies: dict[str, DependencyDeclaration] = field(
        default_factory=dict
    )
    metadata: CrateMetadata = field(default_factory=CrateMetadata)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def package_name(self) -> str | None:
        package = self.data.get("package")
        if isinstance(package, dict) and isinstance(package.get("name"), str):
            return package["name"]
        return None

    @property
    def has_package(self) -> bool:
        return isinstance(self.data.get("package"), dict)

    @property
    def workspace_table(self) -> dict[str, Any] | None:
        workspace = self.data.get("workspace")
        return workspace if isinstance(workspace, dict) else None


@dataclass
class Workspace:
    root: CrateManifest
    member_paths: list[Path] = field(default_factory=list)

    @property
    def root_path(self) -> Path:
        return self.root.path

    @property
    def root_dir(self) -> Path:
        return self.root.directory

    @property
    def dependencies(self) -> dict[str, DependencyDeclaration]:
        return self.root.workspace_dependencies


__all__ = [
    "MANIFEST_NAME",
    "CrateManifest",
    "CrateMetadata",
    "DependencyDeclaration",
    "DependencyKind",
    "SourceSpan",
    "TextEdit",
    "Workspace",
]
