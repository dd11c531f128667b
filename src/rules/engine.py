"""Workspace lint engine: per-member analysis on a worker pool, then one sort."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from manifest.errors import ManifestParseError
from manifest.parser import load_manifest
from rules.diagnostics import Diagnostic, LintKind, ManifestIssue
from rules.lints import (
    check_redundant_default_features,
    check_redundant_features,
    check_unused_dependencies,
)
from scan.usage import scan_crate_usage

if TYPE_CHECKING:
    from pathlib import Path

    from manifest.models import CrateManifest, Workspace
    from rules.config import LintConfig

log = structlog.get_logger("ab_lint.engine")


@dataclass
class MemberResult:
    """Everything one worker produced for one member manifest."""

    path: Path
    manifest: CrateManifest | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    issues: list[ManifestIssue] = field(default_factory=list)


@dataclass
class LintReport:
    workspace: Workspace
    diagnostics: list[Diagnostic] = field(default_factory=list)
    issues: list[ManifestIssue] = field(default_factory=list)
    manifests: dict[str, CrateManifest] = field(default_factory=dict)

    @property
    def fixable(self) -> list[Diagnostic]:
        return [diag for diag in self.diagnostics if diag.edit is not None]

    @property
    def texts(self) -> dict[str, str]:
        """Original text of every successfully parsed manifest, by path."""
        return {path: manifest.text for path, manifest in self.manifests.items()}

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)


def lint_manifest(
    manifest: CrateManifest, workspace: Workspace, config: LintConfig
) -> MemberResult:
    """Run every enabled check against one parsed manifest."""
    result = MemberResult(path=manifest.path, manifest=manifest)
    deps = workspace.dependencies

    if config.is_enabled(LintKind.REDUNDANT_FEATURE):
        result.diagnostics.extend(check_redundant_features(manifest, deps))
    if config.is_enabled(LintKind.REDUNDANT_DEFAULT_FEATURES):
        result.diagnostics.extend(check_redundant_default_features(manifest, deps))

    if config.is_enabled(LintKind.UNUSED_DEPENDENCY) and manifest.declarations:
        usage = scan_crate_usage(
            manifest,
            include_dev=config.check_dev_dependencies,
            exclude_patterns=config.exclude,
            nested_gitignore=config.nested_gitignore,
        )
        if not usage.known:
            result.issues.append(
                ManifestIssue(
                    path=manifest.path,
                    message=(
                        "crate sources could not be read; unused-dependency "
                        f"check skipped ({usage.error})"
                    ),
                    severity="warning",
                )
            )
        result.diagnostics.extend(
            check_unused_dependencies(
                manifest,
                usage,
                ignored=config.ignored,
                include_dev=config.check_dev_dependencies,
            )
        )
    return result


def lint_member(path: Path, workspace: Workspace, config: LintConfig) -> MemberResult:
    """Load and lint one member; a parse failure becomes an issue, not an error."""
    if path == workspace.root_path:
        manifest = workspace.root
    else:
        try:
            manifest = load_manifest(path)
        except ManifestParseError as exc:
            log.info("member.unparsable", manifest=str(path), error=exc.message)
            return MemberResult(
                path=path,
                issues=[ManifestIssue(path=path, message=exc.message, line=exc.line)],
            )

    result = lint_manifest(manifest, workspace, config)
    log.debug(
        "member.checked",
        manifest=str(path),
        declarations=len(manifest.declarations),
        diagnostics=len(result.diagnostics),
    )
    return result


def worker_count(config: LintConfig, jobs: int | None = None) -> int:
    if jobs is not None:
        return jobs
    if config.jobs is not None:
        return config.jobs
    return min(32, (os.cpu_count() or 1) + 4)


def lint_workspace(
    workspace: Workspace, config: LintConfig, *, jobs: int | None = None
) -> LintReport:
    """Lint every member of ``workspace``.

    Members are analyzed independently (in parallel when more than one
    worker is allowed); results are only combined and sorted once all of
    them are done, so the report does not depend on scheduling.
    """
    paths = workspace.member_paths
    workers = worker_count(config, jobs)

    results: list[MemberResult] = []
    if workers == 1 or len(paths) <= 1:
        results = [lint_member(path, workspace, config) for path in paths]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(lint_member, path, workspace, config): path
                for path in paths
            }
            for future in as_completed(futures):
                results.append(future.result())

    report = LintReport(workspace=workspace)
    for result in results:
        report.diagnostics.extend(result.diagnostics)
        report.issues.extend(result.issues)
        if result.manifest is not None:
            report.manifests[str(result.path)] = result.manifest

    report.diagnostics.sort(key=Diagnostic.sort_key)
    report.issues.sort(key=ManifestIssue.sort_key)
    log.info(
        "workspace.checked",
        members=len(paths),
        workers=workers,
        diagnostics=len(report.diagnostics),
        issues=len(report.issues),
    )
    return report


__all__ = [
    "LintReport",
    "MemberResult",
    "lint_manifest",
    "lint_member",
    "lint_workspace",
    "worker_count",
]
