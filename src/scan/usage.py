"""Source-reference usage facts for a crate's declared dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from manifest.errors import UsageScanError
from manifest.models import DependencyKind
from parse.treesitter_paths import extract_crate_references
from scan.files import SKIPPED_DIRS, find_rust_files

if TYPE_CHECKING:
    from manifest.models import CrateManifest, DependencyDeclaration

log = structlog.get_logger("ab_lint.scan")

DEV_SOURCE_DIRS = ("tests", "benches", "examples")


@dataclass(frozen=True)
class SourceRoots:
    """Files and directories whose sources count for each dependency group."""

    library: tuple[Path, ...] = ()
    build: tuple[Path, ...] = ()
    dev: tuple[Path, ...] = ()


@dataclass(frozen=True)
class UsageFacts:
    """Used crate identifiers per dependency group.

    ``used`` is None when the crate's sources could not be read; callers must
    then treat every dependency's usage as unknown.
    """

    used: dict[DependencyKind, frozenset[str]] | None = field(default_factory=dict)
    error: str | None = None

    @property
    def known(self) -> bool:
        return self.used is not None

    def is_used(self, decl: DependencyDeclaration) -> bool | None:
        if self.used is None or decl.kind not in self.used:
            return None
        return decl.ident in self.used[decl.kind]


def _crate_level_sources(crate_dir: Path, build: tuple[Path, ...]) -> list[Path]:
    """Top-level files and directories of the crate that hold target sources."""
    skipped = {*DEV_SOURCE_DIRS, *SKIPPED_DIRS}
    build_scripts = {path.resolve() for path in build}
    try:
        children = sorted(crate_dir.iterdir())
    except OSError as exc:
        raise UsageScanError(crate_dir, exc.strerror or str(exc)) from exc

    roots: list[Path] = []
    for child in children:
        if child.name.startswith(".") or child.is_symlink():
            continue
        if child.is_dir():
            if child.name not in skipped:
                roots.append(child)
        elif child.suffix == ".rs" and child.resolve() not in build_scripts:
            roots.append(child)
    return roots


def _custom_target_roots(
    crate_dir: Path, data: dict[str, Any], build: tuple[Path, ...]
) -> list[Path]:
    """Source roots of ``[lib] path`` and ``[[bin]] path`` entries.

    A target below a subdirectory contributes that directory. A target at the
    crate root contributes the crate's top-level sources, without the build
    script and the test, bench and example directories.
    """
    paths: list[str] = []
    lib = data.get("lib")
    if isinstance(lib, dict) and isinstance(lib.get("path"), str):
        paths.append(lib["path"])
    bins = data.get("bin")
    if isinstance(bins, list):
        paths.extend(
            entry["path"]
            for entry in bins
            if isinstance(entry, dict) and isinstance(entry.get("path"), str)
        )

    roots: list[Path] = []
    crate_level = False
    for path in paths:
        parent = (crate_dir / path).parent
        if parent.resolve() == crate_dir.resolve():
            crate_level = True
        else:
            roots.append(parent)
    if crate_level:
        roots.extend(_crate_level_sources(crate_dir, build))
    return roots


def _dedupe_roots(roots: list[Path]) -> tuple[Path, ...]:
    """Drop roots nested inside another root, keeping first-seen order."""
    resolved = [root.resolve() for root in roots]
    kept: list[Path] = []
    for root in resolved:
        if root in kept:
            continue
        if any(other in root.parents for other in resolved if other != root):
            continue
        kept.append(root)
    return tuple(kept)


def source_roots(manifest: CrateManifest) -> SourceRoots:
    """Resolve where a crate's library, build-script and test sources live."""
    crate_dir = manifest.directory
    data = manifest.data

    package = data.get("package")
    build_setting = package.get("build") if isinstance(package, dict) else None
    build: tuple[Path, ...]
    if build_setting is False:
        build = ()
    elif isinstance(build_setting, str):
        build = (crate_dir / build_setting,)
    else:
        build = (crate_dir / "build.rs",)

    library = _dedupe_roots(
        [crate_dir / "src", *_custom_target_roots(crate_dir, data, build)]
    )

    dev = (*library, *(crate_dir / name for name in DEV_SOURCE_DIRS))
    return SourceRoots(library=library, build=build, dev=dev)


class _ReferenceCollector:
    """Extracts and memoizes crate references per source file."""

    def __init__(
        self,
        crate_dir: Path,
        *,
        exclude_patterns: list[str] | None,
        nested_gitignore: bool,
    ) -> None:
        self.crate_dir = crate_dir.resolve()
        self.exclude_patterns = exclude_patterns
        self.nested_gitignore = nested_gitignore
        self._cache: dict[Path, set[str]] = {}

    @property
    def file_count(self) -> int:
        return len(self._cache)

    def files(self, root: Path) -> list[Path]:
        if root.is_file():
            return [root]
        return list(
            find_rust_files(
                root,
                root=self.crate_dir,
                exclude_patterns=self.exclude_patterns,
                nested_gitignore=self.nested_gitignore,
            )
        )

    def references(self, path: Path) -> set[str]:
        if path not in self._cache:
            try:
                source = path.read_bytes()
            except OSError as exc:
                raise UsageScanError(path, exc.strerror or str(exc)) from exc
            self._cache[path] = extract_crate_references(source)
        return self._cache[path]

    def collect(self, roots: tuple[Path, ...]) -> frozenset[str]:
        found: set[str] = set()
        for root in roots:
            for path in self.files(root):
                found |= self.references(path)
        return frozenset(found)


def scan_crate_usage(
    manifest: CrateManifest,
    *,
    include_dev: bool = False,
    exclude_patterns: list[str] | None = None,
    nested_gitignore: bool = False,
) -> UsageFacts:
    """Compute which crate identifiers each dependency group's sources use.

    Normal dependencies are matched against library and binary sources,
    build dependencies against the build script, and (when ``include_dev``
    is set) dev dependencies against library sources plus ``tests/``,
    ``benches/`` and ``examples/``.

    A read failure anywhere in the crate downgrades the whole result to
    unknown rather than raising.
    """
    collector = _ReferenceCollector(
        manifest.directory,
        exclude_patterns=exclude_patterns,
        nested_gitignore=nested_gitignore,
    )
    try:
        roots = source_roots(manifest)
        used = {
            DependencyKind.NORMAL: collector.collect(roots.library),
            DependencyKind.BUILD: collector.collect(roots.build),
        }
        if include_dev:
            used[DependencyKind.DEV] = collector.collect(roots.dev)
    except UsageScanError as exc:
        log.warning("scan.unreadable", manifest=str(manifest.path), error=str(exc))
        return UsageFacts(used=None, error=str(exc))

    log.debug(
        "scan.completed",
        manifest=str(manifest.path),
        files=collector.file_count,
    )
    return UsageFacts(used=used)


__all__ = ["SourceRoots", "UsageFacts", "scan_crate_usage", "source_roots"]
