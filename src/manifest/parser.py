"""Cargo manifest parsing into dependency declarations."""

from __future__ import annotations

import re
import tomllib
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from manifest.errors import ManifestParseError, SpanIndexError
from manifest.models import (
    CrateManifest,
    CrateMetadata,
    DependencyDeclaration,
    DependencyKind,
)
from manifest.spans import SpanIndex
from manifest.suppression import MARKER_PREFIX, suppressions_for

if TYPE_CHECKING:
    from pathlib import Path

    from manifest.models import SourceSpan
    from manifest.spans import KeyPath

DEPENDENCY_TABLES: dict[str, DependencyKind] = {
    "dependencies": DependencyKind.NORMAL,
    "dev-dependencies": DependencyKind.DEV,
    "dev_dependencies": DependencyKind.DEV,
    "build-dependencies": DependencyKind.BUILD,
    "build_dependencies": DependencyKind.BUILD,
}

DEFAULT_FEATURES_KEYS = ("default-features", "default_features")

_ERROR_LINE_RE = re.compile(r"at line (\d+)")


def _error_line(exc: tomllib.TOMLDecodeError) -> int | None:
    match = _ERROR_LINE_RE.search(str(exc))
    return int(match.group(1)) if match else None


class _DeclarationBuilder:
    """Joins tomllib values with span index positions for one manifest."""

    def __init__(self, path: Path, index: SpanIndex) -> None:
        self.path = path
        self.index = index

    def group(
        self,
        table: dict[str, Any],
        prefix: KeyPath,
        kind: DependencyKind,
        target: str | None,
    ) -> list[DependencyDeclaration]:
        return [
            self.declaration(name, raw, (*prefix, name), kind, target)
            for name, raw in table.items()
        ]

    def declaration(
        self,
        name: str,
        raw: Any,
        key_path: KeyPath,
        kind: DependencyKind,
        target: str | None,
    ) -> DependencyDeclaration:
        span = self._declaration_span(key_path)

        if isinstance(raw, str):
            details: dict[str, Any] = {}
            version: str | None = raw
        elif isinstance(raw, dict):
            details = raw
            raw_version = details.get("version")
            version = raw_version if isinstance(raw_version, str) else None
        else:
            msg = f"dependency '{name}' must be a version string or a table"
            raise ManifestParseError(self.path, msg, line=span.line)

        features = details.get("features", [])
        if not isinstance(features, list) or not all(
            isinstance(feature, str) for feature in features
        ):
            msg = f"'features' of dependency '{name}' must be an array of strings"
            raise ManifestParseError(self.path, msg, line=span.line)

        default_features: bool | None = None
        default_features_key: str | None = None
        for key in DEFAULT_FEATURES_KEYS:
            if key in details:
                if not isinstance(details[key], bool):
                    msg = f"'{key}' of dependency '{name}' must be a boolean"
                    raise ManifestParseError(self.path, msg, line=span.line)
                default_features = details[key]
                default_features_key = key
                break

        package = details.get("package")
        return DependencyDeclaration(
            manifest=str(self.path),
            name=name,
            kind=kind,
            key_path=key_path,
            span=span,
            package=package if isinstance(package, str) else None,
            target=target,
            version=version,
            features=list(features),
            default_features=default_features,
            default_features_key=default_features_key,
            optional=details.get("optional") is True,
            workspace=details.get("workspace") is True,
            features_span=(
                self._value_span((*key_path, "features"))
                if "features" in details
                else None
            ),
            default_features_span=(
                self._value_span((*key_path, default_features_key))
                if default_features_key
                else None
            ),
            suppressed=suppressions_for(self.index, span),
        )

    def _declaration_span(self, key_path: KeyPath) -> SourceSpan:
        starts: list[int] = []
        ends: list[int] = []
        header = self.index.headers.get(key_path)
        if header is not None:
            starts.append(header.start)
            ends.append(header.end)
        for entry in self.index.entries_under(key_path):
            starts.append(entry.start)
            ends.append(entry.end)
        if not starts:
            msg = f"cannot locate declaration '{'.'.join(key_path)}' in the text"
            raise ManifestParseError(self.path, msg)
        return self.index.span(min(starts), max(ends))

    def _value_span(self, key_path: KeyPath) -> SourceSpan | None:
        entry = self.index.entries.get(key_path)
        if entry is None:
            return None
        return self.index.span(entry.value.start, entry.value.end)


def _crate_metadata(path: Path, data: dict[str, Any]) -> CrateMetadata:
    package = data.get("package")
    metadata = package.get("metadata") if isinstance(package, dict) else None
    table = metadata.get(MARKER_PREFIX) if isinstance(metadata, dict) else None
    if table is None:
        return CrateMetadata()
    try:
        return CrateMetadata.model_validate(table)
    except ValidationError as exc:
        msg = f"invalid [package.metadata.{MARKER_PREFIX}] table: {exc}"
        raise ManifestParseError(path, msg) from exc


def parse_manifest(path: Path, text: str) -> CrateManifest:
    """Parse manifest ``text`` read from ``path``.

    Raises:
        ManifestParseError: If the text is not valid TOML or a dependency
            entry has an unexpected shape.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(path, str(exc), line=_error_line(exc)) from exc

    try:
        index = SpanIndex.build(text)
    except SpanIndexError as exc:
        line = SpanIndex(text).line_of(exc.offset)
        raise ManifestParseError(path, str(exc), line=line) from exc

    builder = _DeclarationBuilder(path, index)
    declarations: list[DependencyDeclaration] = []

    for table_name, kind in DEPENDENCY_TABLES.items():
        table = data.get(table_name)
        if isinstance(table, dict):
            declarations.extend(builder.group(table, (table_name,), kind, None))

    targets = data.get("target")
    if isinstance(targets, dict):
        for target, target_tables in targets.items():
            if not isinstance(target_tables, dict):
                continue
            for table_name, kind in DEPENDENCY_TABLES.items():
                table = target_tables.get(table_name)
                if isinstance(table, dict):
                    declarations.extend(
                        builder.group(
                            table, ("target", target, table_name), kind, target
                        )
                    )

    workspace_dependencies: dict[str, DependencyDeclaration] = {}
    workspace = data.get("workspace")
    if isinstance(workspace, dict) and isinstance(workspace.get("dependencies"), dict):
        for decl in builder.group(
            workspace["dependencies"],
            ("workspace", "dependencies"),
            DependencyKind.NORMAL,
            None,
        ):
            workspace_dependencies[decl.name] = decl

    declarations.sort(key=lambda decl: decl.span.start)
    ordered = [
        decl.model_copy(update={"order": order})
        for order, decl in enumerate(declarations)
    ]

    return CrateManifest(
        path=path,
        text=text,
        index=index,
        data=data,
        declarations=ordered,
        workspace_dependencies=workspace_dependencies,
        metadata=_crate_metadata(path, data),
    )


def load_manifest(path: Path) -> CrateManifest:
    """Read and parse the manifest at ``path``, keeping line endings intact."""
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestParseError(path, f"cannot read manifest: {exc}") from exc
    return parse_manifest(path, text)


__all__ = [
    "DEFAULT_FEATURES_KEYS",
    "DEPENDENCY_TABLES",
    "load_manifest",
    "parse_manifest",
]
