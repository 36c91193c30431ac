# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings. Every field can be
overridden with a PAGESFLOW_-prefixed environment variable.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagesflow.core.errors import ConfigurationError

__all__ = ["ConfigurationError", "Settings", "load_settings"]


class Settings(BaseSettings):
    """Pipeline settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAGESFLOW_",
        extra="ignore",
    )

    # === Trigger ===
    workflow_name: str = "github pages"
    watched_branch: str = "main"

    # === Toolchain ===
    toolchain_channel: str = "stable"
    toolchain_targets: str = "x86_64-unknown-linux-gnu,wasm32-unknown-unknown"
    # crate:binary pairs
    cli_tools: str = "dioxus-cli:dx"
    tool_force_reinstall: bool = True

    # === Build ===
    web_build_tool: str = "dx"
    native_build_tool: str = "cargo"
    build_release: bool = True
    web_features: str = "web"
    prebuild_features: str = "prebuild"
    search_features: str = "web"
    output_dir: Path = Path("docs")
    index_file: str = "index.html"
    fallback_file: str = "404.html"
    search_marker: str = ""

    # === Publish ===
    publish_branch: str = "gh-pages"
    target_folder: str = "."
    git_remote: str = "origin"
    # empty: use the source checkout's remote URL
    publish_repo_url: str = ""
    git_user_name: str = "pagesflow"
    git_user_email: str = "pagesflow@users.noreply.github.com"
    commit_message: str = "Deploying to {branch} from @ {sha}"

    # === Run ===
    staging_root: Path = Path("~/.pagesflow/staging")
    report_dir: Path | None = None
    run_timeout_seconds: float | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: Path) -> Path:  # noqa: N805
        """Output directory is a subdirectory of the checkout.

        The orchestrator empties it at the start of every run, so it can be
        neither the checkout root nor outside it.
        """
        if v.is_absolute() or ".." in v.parts:
            raise ValueError("output_dir must be relative to the source checkout")
        if not v.parts:
            raise ValueError("output_dir must not be the checkout root")
        return v

    @field_validator("run_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:  # noqa: N805
        """Timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("run_timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency."""
        errors: list[str] = []

        folder = PurePosixPath(self.target_folder)
        if folder.is_absolute() or ".." in folder.parts or "\\" in self.target_folder:
            errors.append("TARGET_FOLDER must be a relative path inside the branch")

        if not self.toolchain_targets_list:
            errors.append("TOOLCHAIN_TARGETS must list at least one target")

        if self.publish_branch == self.watched_branch:
            errors.append("PUBLISH_BRANCH must differ from WATCHED_BRANCH")

        if self.index_file == self.fallback_file:
            errors.append("INDEX_FILE and FALLBACK_FILE must differ")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def toolchain_targets_list(self) -> list[str]:
        """Parse comma-separated toolchain targets."""
        return [t.strip() for t in self.toolchain_targets.split(",") if t.strip()]

    @property
    def cli_tools_list(self) -> list[tuple[str, str]]:
        """Parse crate:binary pairs; a bare name is both crate and binary."""
        tools: list[tuple[str, str]] = []
        for item in self.cli_tools.split(","):
            item = item.strip()
            if not item:
                continue
            crate, _, binary = item.partition(":")
            tools.append((crate.strip(), (binary or crate).strip()))
        return tools

    @property
    def web_features_list(self) -> list[str]:
        return _split(self.web_features)

    @property
    def prebuild_features_list(self) -> list[str]:
        return _split(self.prebuild_features)

    @property
    def search_features_list(self) -> list[str]:
        return _split(self.search_features)


def _split(raw: str) -> list[str]:
    return [f.strip() for f in raw.split(",") if f.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
