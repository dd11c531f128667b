"""Command-line interface for ab-lint."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from fix.apply import plan_fixes, unified_diff, write_fixes
from logs import setup_logging
from manifest.errors import WorkspaceError
from manifest.workspace import find_workspace_manifest, load_workspace
from report.render import FIX_HINT, format_issue, render_json, render_text
from rules.config import ConfigError, load_config
from rules.diagnostics import Diagnostic, ManifestIssue
from rules.engine import lint_workspace
from utils import display_path


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        msg = f"invalid job count: {value!r}"
        raise argparse.ArgumentTypeError(msg) from exc
    if number < 1:
        msg = f"job count must be at least 1, got {number}"
        raise argparse.ArgumentTypeError(msg)
    return number


def _add_common_paths(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Directory to start workspace discovery from (default: .)",
    )
    parser.add_argument(
        "--manifest-path",
        default=None,
        help="Path to the workspace root Cargo.toml (skips discovery)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ab-lint")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check", help="Lint workspace dependency declarations"
    )
    _add_common_paths(check_parser)
    check_parser.add_argument(
        "--fix",
        action="store_true",
        help="Rewrite manifests to remove redundant declarations",
    )
    check_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the fixes as a unified diff instead of writing them",
    )
    check_parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Report format (default: text)",
    )
    check_parser.add_argument(
        "--jobs",
        type=_positive_int,
        default=None,
        help="Worker threads for member analysis (default: config or CPU based)",
    )

    members_parser = subparsers.add_parser(
        "members", help="List the workspace member manifests"
    )
    _add_common_paths(members_parser)

    return parser


def _resolve_manifest(root: Path, manifest_path: str | None) -> Path:
    if manifest_path is not None:
        return Path(manifest_path).expanduser().resolve()
    return find_workspace_manifest(root)


def _write_issues(issues: list[ManifestIssue], cwd: Path) -> None:
    for issue in issues:
        sys.stderr.write(format_issue(issue, cwd) + "\n")


def _handle_check(args: argparse.Namespace, root: Path, cwd: Path) -> int:
    try:
        workspace = load_workspace(_resolve_manifest(root, args.manifest_path))
        config = load_config(workspace.root_dir, workspace.root.data)
    except (WorkspaceError, ConfigError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    report = lint_workspace(workspace, config, jobs=args.jobs)
    diagnostics: list[Diagnostic] = report.diagnostics
    issues = list(report.issues)
    fixed: list[str] = []
    fix_mode = args.fix or args.dry_run

    if fix_mode:
        result = plan_fixes(report.fixable, report.texts)
        issues.extend(result.issues)
        issues.extend(write_fixes(result, dry_run=args.dry_run))

        diff_stream = sys.stdout if args.format == "text" else sys.stderr
        resolved: set[int] = set()
        for fix in result.fixes:
            if args.dry_run and fix.changed:
                diff_stream.write(unified_diff(fix, label=display_path(fix.path, cwd)))
            if fix.written or (args.dry_run and fix.changed):
                resolved.update(id(diag) for diag in fix.applied)
            if fix.written:
                fixed.append(str(fix.path))

        diagnostics = [diag for diag in diagnostics if id(diag) not in resolved]
        diagnostics.extend(result.conflicts)
        diagnostics.sort(key=Diagnostic.sort_key)
        issues.sort(key=ManifestIssue.sort_key)

    if args.format == "json":
        sys.stdout.write(render_json(diagnostics, issues, cwd, fixed=fixed).decode())
        sys.stdout.write("\n")
    else:
        for line in render_text(diagnostics, cwd):
            sys.stdout.write(line + "\n")
        for path in fixed:
            sys.stderr.write(f"fixed: {display_path(path, cwd)}\n")
        if not fix_mode and report.fixable:
            sys.stderr.write(FIX_HINT + "\n")

    _write_issues(issues, cwd)

    failed = bool(diagnostics) or any(issue.severity == "error" for issue in issues)
    return 1 if failed else 0


def _handle_members(args: argparse.Namespace, root: Path, cwd: Path) -> int:
    try:
        workspace = load_workspace(_resolve_manifest(root, args.manifest_path))
    except WorkspaceError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    for path in workspace.member_paths:
        sys.stdout.write(display_path(path, cwd) + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    cwd = Path.cwd()
    root = Path(args.root).expanduser().resolve()

    if args.command == "check":
        return _handle_check(args, root, cwd)

    if args.command == "members":
        return _handle_members(args, root, cwd)

    raise AssertionError


if __name__ == "__main__":
    raise SystemExit(main())
