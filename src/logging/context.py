# src/logging/context.py - v1
"""Contextual logging support: attach run_id, concurrency key and phase to records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per run execution.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_concurrency_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "concurrency_key", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    concurrency_key: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        concurrency_key=_concurrency_key.get(),
        phase=_phase.get(),
    )


def set_run_context(run_id: str, concurrency_key: str | None = None) -> None:
    """Set run-level context (called once per run, inside the run's task)."""
    _run_id.set(run_id)
    _concurrency_key.set(concurrency_key)
    _phase.set(None)


def set_phase_context(phase: str | None) -> None:
    """Set the phase currently executing."""
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _concurrency_key.set(None)
    _phase.set(None)
