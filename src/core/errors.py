# src/core/errors.py - v1
"""Error taxonomy for a pipeline run.

Every failure is fatal to the run that raised it; nothing here is retried.
RunCancelledError is the odd one out: a superseded run ends quietly with
status "cancelled" rather than "failed".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagesflow.core.process import CommandResult


class PagesflowError(Exception):
    """Base class for all pipeline errors."""


class CommandFailedError(PagesflowError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def diagnostic(self) -> str:
        """Best available diagnostic text from the failed command."""
        if self.result is None:
            return str(self)
        return (self.result.stderr or self.result.stdout or str(self)).strip()


class ConfigurationError(PagesflowError):
    """Settings are internally inconsistent."""


class ProvisioningError(PagesflowError):
    """Toolchain or CLI tool could not be installed or resolved."""


class BuildError(PagesflowError):
    """A build phase failed."""

    def __init__(self, phase: str, message: str) -> None:
        super().__init__(f"{phase}: {message}")
        self.phase = phase


class HandoffError(BuildError):
    """Output directory violates the hand-off invariants after the last phase."""

    def __init__(self, message: str) -> None:
        super().__init__("handoff", message)


class PublishError(PagesflowError):
    """Publishing to the hosting branch failed."""


class RunCancelledError(PagesflowError):
    """Run was superseded by a newer run in the same concurrency group."""

    def __init__(self, run_id: str, superseded_by: str | None = None) -> None:
        msg = f"run {run_id} cancelled"
        if superseded_by:
            msg += f" (superseded by {superseded_by})"
        super().__init__(msg)
        self.run_id = run_id
        self.superseded_by = superseded_by


class RunTimeoutError(PagesflowError):
    """Run exceeded the configured execution limit."""
