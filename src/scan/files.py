"""Rust source file scanning for ab-lint."""

from __future__ import annotations

import os
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

from manifest.errors import UsageScanError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

SKIPPED_DIRS = frozenset({"target", ".git"})


def _should_include_file(
    path: Path,
    root: Path,
    gitignore_matches: Callable[[str], bool] | None,
    exclude_patterns: list[str] | None,
) -> bool:
    """Check if a file should be included based on all filtering rules."""
    if not path.is_file() or path.is_symlink():
        return False

    if not _is_within_root(path, root):
        return False

    try:
        rel_path = path.relative_to(root)
    except ValueError:
        return False

    if any(part in SKIPPED_DIRS for part in rel_path.parts[:-1]):
        return False

    if gitignore_matches is not None and gitignore_matches(str(path)):
        return False

    has_excluded_match = exclude_patterns and any(
        fnmatch(rel_path.as_posix(), pat) for pat in exclude_patterns
    )
    return not has_excluded_match


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _iter_gitignore_files(root: Path) -> list[Path]:
    """Return sorted list of .gitignore files under root (including root)."""
    gitignore_paths = [root / ".gitignore"]
    gitignore_paths.extend(root.rglob(".gitignore"))
    unique_paths = {
        path for path in gitignore_paths if path.is_file() and not path.is_symlink()
    }
    return sorted(unique_paths, key=lambda p: p.relative_to(root).as_posix())


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        gitignore_path = root / ".gitignore"
        if gitignore_path.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
        return None

    gitignore_paths = _iter_gitignore_files(root)
    if not gitignore_paths:
        return None

    matchers = [parse_gitignore(path) for path in gitignore_paths]

    def matches(path_str: str) -> bool:
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                continue
        return False

    return matches


def _walk_rust_files(directory: Path) -> list[Path]:
    def _raise(error: OSError) -> None:
        failed = Path(error.filename) if error.filename else directory
        raise UsageScanError(failed, error.strerror or str(error))

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory, onerror=_raise):
        dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRS)
        found.extend(Path(dirpath) / name for name in filenames if name.endswith(".rs"))
    return found


def find_rust_files(
    directory: Path,
    *,
    root: Path | None = None,
    exclude_patterns: list[str] | None = None,
    nested_gitignore: bool = False,
) -> Iterator[Path]:
    """Find all Rust files below a source directory, respecting .gitignore.

    Args:
        directory: Source directory to search (e.g. a crate's ``src/``)
        root: Crate root the files must stay within; gitignore files and
            exclude patterns are resolved against it (default: ``directory``)
        exclude_patterns: Optional list of fnmatch patterns, relative to
            ``root``; files matching any pattern are excluded
        nested_gitignore: Also honor .gitignore files below ``root``

    Yields:
        Path objects for each Rust file found, sorted lexicographically
        by relative path for deterministic ordering.

    Raises:
        UsageScanError: If a directory below ``directory`` cannot be listed.
    """
    directory = directory.resolve()
    crate_root = root.resolve() if root is not None else directory
    if not directory.is_dir():
        return

    gitignore_matches = _build_gitignore_matcher(
        crate_root,
        nested_gitignore=nested_gitignore,
    )

    matched_files = [
        path
        for path in _walk_rust_files(directory)
        if _should_include_file(
            path,
            crate_root,
            gitignore_matches,
            exclude_patterns,
        )
    ]

    matched_files.sort(key=lambda p: p.relative_to(crate_root).as_posix())

    yield from matched_files


__all__ = ["SKIPPED_DIRS", "_should_include_file", "find_rust_files"]
