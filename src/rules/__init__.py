"""Lint rule definitions for ab-lint."""

from rules.config import (
    ConfigError,
    LintConfig,
    load_config,
)
from rules.diagnostics import Diagnostic, LintKind, ManifestIssue

__all__ = [
    "ConfigError",
    "Diagnostic",
    "LintConfig",
    "LintKind",
    "ManifestIssue",
    "load_config",
]
