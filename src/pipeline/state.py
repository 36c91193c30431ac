# src/pipeline/state.py - v1
"""Mutable run state flowing through all phases of one pipeline run.

Accumulates phase results, entry-page digests and the publish outcome, and
owns the run's status transitions.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from pagesflow.core.models import TERMINAL_STATUSES, PhaseResult, PublishResult, RunStatus

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "cancelled", "failed"}),
    "running": TERMINAL_STATUSES,
    "succeeded": frozenset(),
    "failed": frozenset(),
    "cancelled": frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised on a status change the run lifecycle does not allow."""


class RunState(BaseModel):
    """State of one pipeline run."""

    # === IDENTITY ===
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    ref: str = ""
    sha: str = ""
    concurrency_key: str = ""
    source_dir: Path = Path(".")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    # === LIFECYCLE ===
    status: RunStatus = "pending"
    phases: list[PhaseResult] = Field(default_factory=list)
    error: str | None = None
    superseded_by: str | None = None

    # === BUILD OUTPUT ===
    pre_search_digest: str | None = None
    index_digest: str | None = None
    fallback_digest: str | None = None
    handoff_dir: Path | None = None

    # === PUBLISH ===
    publish: PublishResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def phase_names(self) -> list[str]:
        return [p.name for p in self.phases]

    @property
    def duration_ms(self) -> int:
        return sum(p.duration_ms for p in self.phases)

    def record_phase(self, result: PhaseResult) -> None:
        """Append a phase result, in execution order."""
        self.phases.append(result)

    def transition(self, status: RunStatus, error: str | None = None) -> None:
        """Move to a new status.

        Raises:
            InvalidTransitionError: If the lifecycle does not allow the move.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"{self.status} -> {status}")
        self.status = status
        if error is not None:
            self.error = error
        if status in TERMINAL_STATUSES:
            self.finished_at = datetime.now(timezone.utc)
