from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rules.diagnostics import LintKind

CONFIG_FILENAME = "ab-lint.toml"
METADATA_TABLE = "ab-lint"


class LintConfig(BaseModel):
    """Configuration for an ab-lint run."""

    model_config = ConfigDict(extra="forbid")

    ignored: list[str] = Field(
        default_factory=list,
        description="Dependency names exempt from the unused-dependency check",
    )
    disabled: list[LintKind] = Field(
        default_factory=list,
        description="Lint kinds that are not run",
    )
    check_dev_dependencies: bool = Field(
        default=False,
        description=(
            "Also check dev-dependencies for usage in tests, benches and examples"
        ),
    )
    jobs: int | None = Field(
        default=None,
        ge=1,
        description="Worker threads for member analysis (default: CPU based)",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns (crate-relative) for source files to skip",
    )
    nested_gitignore: bool = Field(
        default=False,
        description=(
            "Enable nested .gitignore composition (default: false for root-only)"
        ),
    )

    @field_validator("ignored", mode="before")
    @classmethod
    def validate_ignored(cls, v: Any) -> Any:
        """Reject blank dependency names in the allow-list.

        Note: this runs in `mode="before"` so we can report a clear error
        message using the raw TOML values.
        """

        if v is None:
            return []

        if not isinstance(v, list):
            msg = "ignored must be an array of dependency names"
            raise ValueError(msg)

        for name in v:
            if not isinstance(name, str) or not name.strip():
                msg = f"Invalid dependency name in ignored: {name!r}"
                raise ValueError(msg)

        return [name.strip() for name in v]

    @field_validator("disabled")
    @classmethod
    def validate_disabled(cls, v: list[LintKind]) -> list[LintKind]:
        if LintKind.FIX_CONFLICT in v:
            msg = f"{LintKind.FIX_CONFLICT.value} cannot be disabled"
            raise ValueError(msg)
        return v

    def is_enabled(self, kind: LintKind) -> bool:
        return kind not in self.disabled


class ConfigError(Exception):
    """Raised when configuration exists but cannot be parsed."""


def _metadata_table(workspace_data: dict[str, Any] | None) -> Any:
    if not workspace_data:
        return None
    workspace = workspace_data.get("workspace")
    metadata = workspace.get("metadata") if isinstance(workspace, dict) else None
    if not isinstance(metadata, dict):
        return None
    return metadata.get(METADATA_TABLE)


def load_config(
    root: Path, workspace_data: dict[str, Any] | None = None
) -> LintConfig:
    """Load configuration for the workspace rooted at ``root``.

    ``ab-lint.toml`` in the root directory takes precedence; otherwise the
    ``[workspace.metadata.ab-lint]`` table of the root manifest (passed as
    ``workspace_data``) is used; otherwise defaults.
    """
    config_path = Path(root) / CONFIG_FILENAME

    if config_path.is_file():
        source = str(config_path)
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {config_path}: {e}"
            raise ConfigError(msg) from e
    else:
        table = _metadata_table(workspace_data)
        if table is None:
            return LintConfig()
        source = f"[workspace.metadata.{METADATA_TABLE}]"
        data = table

    try:
        return LintConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid config in {source}: {e}"
        raise ConfigError(msg) from e


__all__ = ["CONFIG_FILENAME", "ConfigError", "LintConfig", "load_config"]
