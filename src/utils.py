"""Shared utilities for ab-lint."""

from __future__ import annotations

from pathlib import Path


def crate_ident(name: str) -> str:
    """Convert a dependency name to the identifier Rust source uses for it.

    Args:
        name: Dependency key as written in Cargo.toml (e.g., "serde-json")

    Returns:
        Crate identifier (e.g., "serde_json")

    Examples:
        >>> crate_ident("serde-json")
        'serde_json'
        >>> crate_ident("rand")
        'rand'
    """
    return name.replace("-", "_")


def display_path(path: str | Path, cwd: Path | None = None) -> str:
    """Render a path relative to ``cwd`` when it lies below it.

    Examples:
        >>> display_path("/ws/crates/a/Cargo.toml", Path("/ws"))
        'crates/a/Cargo.toml'
        >>> display_path("/elsewhere/Cargo.toml", Path("/ws"))
        '/elsewhere/Cargo.toml'
    """
    target = Path(path)
    if cwd is None:
        return target.as_posix()
    try:
        return target.relative_to(cwd).as_posix()
    except ValueError:
        # Outside cwd: keep the path as given.
        return target.as_posix()
