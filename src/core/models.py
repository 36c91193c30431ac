# src/core/models.py - v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RunStatus = Literal["pending", "running", "succeeded", "failed", "cancelled"]
PhaseStatus = Literal["succeeded", "failed", "skipped"]
BuildTarget = Literal["web", "native"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"succeeded", "failed", "cancelled"})


# === BUILD ===


class BuildInvocation(BaseModel):
    """One call to the application build tool."""

    model_config = ConfigDict(frozen=True)

    target: BuildTarget
    release: bool = True
    features: tuple[str, ...] = ()

    @property
    def feature_flag(self) -> str:
        """Comma-joined feature list as passed to --features."""
        return ",".join(self.features)


class PhaseResult(BaseModel):
    """Outcome of one pipeline phase within a run."""

    name: str
    status: PhaseStatus
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0
    detail: str = ""
    digest: str | None = None


# === PUBLISH ===


class PublishResult(BaseModel):
    """What a publish wrote to the hosting branch."""

    branch: str
    target_folder: str
    files_written: int = 0
    files_preserved: int = 0
    commit: str | None = None
    pushed: bool = False
    created_branch: bool = False
