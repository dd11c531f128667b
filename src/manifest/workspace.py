"""Workspace discovery and member enumeration."""

from __future__ import annotations

import glob
import tomllib
from pathlib import Path

import structlog

from manifest.errors import ManifestParseError, WorkspaceError
from manifest.models import MANIFEST_NAME, CrateManifest, Workspace
from manifest.parser import load_manifest

log = structlog.get_logger("ab_lint.workspace")

_GLOB_CHARS = frozenset("*?[")


def _declares_workspace(manifest_path: Path) -> bool:
    try:
        with manifest_path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"cannot read {manifest_path} while looking for the workspace root: {exc}"
        raise WorkspaceError(msg) from exc
    return isinstance(data.get("workspace"), dict)


def find_workspace_manifest(start: Path) -> Path:
    """Locate the workspace root manifest for ``start``.

    Walks up from ``start`` the way cargo does: the nearest ``Cargo.toml``
    carrying a ``[workspace]`` table wins; when none does, the nearest
    manifest is treated as a single-package workspace.

    Raises:
        WorkspaceError: If no manifest exists in ``start`` or its parents.
    """
    start = start.expanduser().resolve()
    nearest: Path | None = None
    for directory in (start, *start.parents):
        candidate = directory / MANIFEST_NAME
        if not candidate.is_file():
            continue
        if nearest is None:
            nearest = candidate
        if _declares_workspace(candidate):
            return candidate
    if nearest is not None:
        return nearest
    msg = f"could not find {MANIFEST_NAME} in {start} or any parent directory"
    raise WorkspaceError(msg)


def _is_excluded(directory: Path, excluded: list[Path]) -> bool:
    return any(directory == ex or ex in directory.parents for ex in excluded)


def _string_list(root: CrateManifest, key: str) -> list[str]:
    table = root.workspace_table or {}
    values = table.get(key, [])
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        msg = f"{root.path}: workspace.{key} must be an array of strings"
        raise WorkspaceError(msg)
    return values


def expand_members(root: CrateManifest) -> list[Path]:
    """Return member manifest paths in declaration order.

    The root manifest comes first when it also declares a ``[package]``.

    Raises:
        WorkspaceError: If a member directory has no manifest.
    """
    root_dir = root.directory
    excluded = [(root_dir / entry).resolve() for entry in _string_list(root, "exclude")]

    members: list[Path] = []
    if root.has_package:
        members.append(root.path)

    for pattern in _string_list(root, "members"):
        is_glob = any(char in _GLOB_CHARS for char in pattern)
        if is_glob:
            matches = sorted(glob.glob(str(root_dir / pattern)))
        else:
            matches = [str(root_dir / pattern)]

        for match in matches:
            directory = Path(match).resolve()
            if is_glob and not directory.is_dir():
                continue
            if _is_excluded(directory, excluded):
                continue
            manifest_path = directory / MANIFEST_NAME
            if not manifest_path.is_file():
                msg = (
                    f"workspace member '{pattern}' resolves to {directory}, "
                    f"which has no {MANIFEST_NAME} (declared in {root.path})"
                )
                raise WorkspaceError(msg)
            if manifest_path not in members:
                members.append(manifest_path)

    return members


def load_workspace(manifest_path: Path) -> Workspace:
    """Parse the workspace root manifest and enumerate its members.

    Raises:
        WorkspaceError: If the root manifest is missing or unparsable, or a
            member has no manifest.
    """
    manifest_path = manifest_path.expanduser().resolve()
    if not manifest_path.is_file():
        msg = f"manifest not found: {manifest_path}"
        raise WorkspaceError(msg)

    try:
        root = load_manifest(manifest_path)
    except ManifestParseError as exc:
        msg = f"cannot load workspace root manifest: {exc}"
        raise WorkspaceError(msg) from exc

    members = expand_members(root)
    log.info(
        "workspace.discovered",
        root=str(manifest_path),
        members=len(members),
        workspace_dependencies=len(root.workspace_dependencies),
    )
    return Workspace(root=root, member_paths=members)


__all__ = ["expand_members", "find_workspace_manifest", "load_workspace"]
