# src/tracking/report.py - v1
"""Run report: per-phase timings, entry-page digests and outcome.

Exported as JSON for CI artifacts and as a short text summary for the CLI.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from pagesflow.core.models import PhaseResult, PublishResult, RunStatus
from pagesflow.pipeline.state import RunState

logger = logging.getLogger(__name__)


class RunReport(BaseModel):
    """Serializable outcome of one run."""

    run_id: str
    ref: str
    sha: str
    concurrency_key: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int
    phases: list[PhaseResult]
    pre_search_digest: str | None = None
    index_digest: str | None = None
    fallback_in_sync: bool = False
    publish: PublishResult | None = None
    error: str | None = None
    superseded_by: str | None = None


def build_run_report(state: RunState) -> RunReport:
    """Snapshot a run state into a report."""
    return RunReport(
        run_id=state.run_id,
        ref=state.ref,
        sha=state.sha,
        concurrency_key=state.concurrency_key,
        status=state.status,
        started_at=state.created_at,
        finished_at=state.finished_at,
        duration_ms=state.duration_ms,
        phases=list(state.phases),
        pre_search_digest=state.pre_search_digest,
        index_digest=state.index_digest,
        fallback_in_sync=(
            state.index_digest is not None
            and state.index_digest == state.fallback_digest
        ),
        publish=state.publish,
        error=state.error,
        superseded_by=state.superseded_by,
    )


def export_run_json(report: RunReport, path: Path) -> None:
    """Write the report as formatted JSON.

    Args:
        report: Report to export.
        path: Output file path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.debug("Run report written to %s", path)


def export_run_summary(report: RunReport) -> str:
    """Human-readable multi-line summary."""
    lines = [
        f"Run {report.run_id} ({report.ref}): {report.status.upper()}",
        f"  Group:     {report.concurrency_key}",
        f"  Duration:  {report.duration_ms / 1000:.1f}s",
    ]
    for phase in report.phases:
        line = f"  - {phase.name:<18} {phase.status:<9} {phase.duration_ms:>7}ms"
        if phase.status == "failed" and phase.detail:
            line += f"  {phase.detail}"
        lines.append(line)
    if report.index_digest:
        lines.append(f"  index.html {report.index_digest[:12]} (404 in sync: {report.fallback_in_sync})")
    if report.publish is not None:
        target = f"{report.publish.branch}:{report.publish.target_folder}"
        commit = report.publish.commit[:12] if report.publish.commit else "no changes"
        lines.append(f"  Published: {target} {commit}")
    if report.superseded_by:
        lines.append(f"  Superseded by run {report.superseded_by}")
    elif report.error:
        lines.append(f"  Error:     {report.error}")
    return "\n".join(lines)
