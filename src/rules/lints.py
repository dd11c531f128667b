"""The three dependency lints.

Each check looks at one declaration at a time and never depends on another
check's outcome. Redundancy checks attach a text edit; the unused check never
does.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fix.edits import remove_array_items, remove_entry
from manifest.models import DependencyDeclaration, DependencyKind
from manifest.parser import DEFAULT_FEATURES_KEYS
from rules.diagnostics import Diagnostic, LintKind

if TYPE_CHECKING:
    from collections.abc import Collection

    from manifest.models import CrateManifest, SourceSpan, TextEdit
    from scan.usage import UsageFacts

# Keys the redundancy fixes may remove from a member's inline table.
REMOVABLE_KEYS = frozenset({"features", *DEFAULT_FEATURES_KEYS})


def _diagnostic(
    kind: LintKind,
    decl: DependencyDeclaration,
    message: str,
    *,
    span: SourceSpan | None = None,
    edit: TextEdit | None = None,
) -> Diagnostic:
    return Diagnostic(
        kind=kind,
        manifest=decl.manifest,
        span=span or decl.span,
        message=message,
        dependency=decl.name,
        dependency_kind=decl.kind,
        order=decl.order,
        edit=edit,
    )


def _inherits(
    decl: DependencyDeclaration, workspace_deps: dict[str, DependencyDeclaration]
) -> DependencyDeclaration | None:
    if not decl.workspace:
        return None
    return workspace_deps.get(decl.name)


def redundant_features(
    decl: DependencyDeclaration, workspace_dep: DependencyDeclaration
) -> list[str]:
    """Member features already enabled at workspace level, in member order.

    Examples:
        >>> from manifest.models import SourceSpan
        >>> span = SourceSpan(start=0, end=1, line=1, end_line=1)
        >>> ws = DependencyDeclaration(
        ...     manifest="Cargo.toml", name="serde", kind="normal",
        ...     key_path=("workspace", "dependencies", "serde"), span=span,
        ...     features=["derive", "rc"],
        ... )
        >>> member = ws.model_copy(update={"features": ["std", "rc", "derive", "rc"]})
        >>> redundant_features(member, ws)
        ['rc', 'derive']
    """
    enabled = set(workspace_dep.features)
    seen: list[str] = []
    for feature in decl.features:
        if feature in enabled and feature not in seen:
            seen.append(feature)
    return seen


def check_redundant_features(
    manifest: CrateManifest, workspace_deps: dict[str, DependencyDeclaration]
) -> list[Diagnostic]:
    kind = LintKind.REDUNDANT_FEATURE
    diagnostics: list[Diagnostic] = []
    index = manifest.index

    for decl in manifest.declarations:
        workspace_dep = _inherits(decl, workspace_deps)
        if workspace_dep is None or decl.is_suppressed(kind.value):
            continue
        redundant = redundant_features(decl, workspace_dep)
        if not redundant:
            continue

        entry = index.entries[(*decl.key_path, "features")]
        drop = [
            position
            for position, item in enumerate(entry.value.items)
            if index.string_value(item) in redundant
        ]
        edit = remove_array_items(index, entry, drop, removable=REMOVABLE_KEYS)
        listed = ", ".join(f'"{feature}"' for feature in redundant)
        diagnostics.append(
            _diagnostic(
                kind,
                decl,
                f"redundant feature(s) [{listed}] for workspace "
                f"{decl.kind.label} `{decl.name}`",
                span=decl.features_span or decl.span,
                edit=edit,
            )
        )
    return diagnostics


def check_redundant_default_features(
    manifest: CrateManifest, workspace_deps: dict[str, DependencyDeclaration]
) -> list[Diagnostic]:
    kind = LintKind.REDUNDANT_DEFAULT_FEATURES
    diagnostics: list[Diagnostic] = []
    index = manifest.index

    for decl in manifest.declarations:
        workspace_dep = _inherits(decl, workspace_deps)
        if workspace_dep is None or decl.is_suppressed(kind.value):
            continue
        if decl.default_features is None or workspace_dep.default_features is None:
            continue
        if decl.default_features != workspace_dep.default_features:
            continue

        key = decl.default_features_key or DEFAULT_FEATURES_KEYS[0]
        entry = index.entries[(*decl.key_path, key)]
        value = "true" if decl.default_features else "false"
        diagnostics.append(
            _diagnostic(
                kind,
                decl,
                f"redundant `{key} = {value}` for workspace "
                f"{decl.kind.label} `{decl.name}`",
                span=decl.default_features_span or decl.span,
                edit=remove_entry(index, entry, removable=REMOVABLE_KEYS),
            )
        )
    return diagnostics


def check_unused_dependencies(
    manifest: CrateManifest,
    usage: UsageFacts,
    *,
    ignored: Collection[str] = (),
    include_dev: bool = False,
) -> list[Diagnostic]:
    """Flag declared dependencies no source file of the crate references.

    Declarations whose usage is unknown are never flagged.
    """
    kind = LintKind.UNUSED_DEPENDENCY
    if not usage.known:
        return []

    exempt = {*ignored, *manifest.metadata.ignored}
    diagnostics: list[Diagnostic] = []
    for decl in manifest.declarations:
        if decl.kind is DependencyKind.DEV and not include_dev:
            continue
        if decl.name in exempt or decl.is_suppressed(kind.value):
            continue
        if usage.is_used(decl) is not False:
            continue
        diagnostics.append(
            _diagnostic(
                kind,
                decl,
                f"unused {decl.kind.label} `{decl.name}`: "
                f"`{decl.ident}` is never referenced",
            )
        )
    return diagnostics


__all__ = [
    "REMOVABLE_KEYS",
    "check_redundant_default_features",
    "check_redundant_features",
    "check_unused_dependencies",
    "redundant_features",
]
