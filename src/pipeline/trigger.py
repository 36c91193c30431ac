# src/pipeline/trigger.py - v1
"""Push-event trigger and the concurrency key derived from it."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"


class TriggerEvent(BaseModel):
    """A push that may start a run."""

    workflow: str
    ref: str
    event_name: str = "push"
    sha: str = ""
    pull_request_number: int | None = None

    @property
    def branch(self) -> str | None:
        """Branch name for refs/heads/* refs, else None."""
        if self.ref.startswith(BRANCH_PREFIX):
            return self.ref[len(BRANCH_PREFIX):]
        return None

    @classmethod
    def from_github_event(
        cls,
        payload: dict[str, Any],
        workflow: str,
        event_name: str = "push",
    ) -> TriggerEvent:
        """Build from a GitHub webhook/Actions event payload."""
        pr = payload.get("pull_request") or {}
        return cls(
            workflow=workflow,
            event_name=event_name,
            ref=payload.get("ref", ""),
            sha=payload.get("after") or (payload.get("head_commit") or {}).get("id", ""),
            pull_request_number=pr.get("number"),
        )

    @classmethod
    def from_event_file(
        cls, path: Path, workflow: str, event_name: str = "push"
    ) -> TriggerEvent:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_github_event(payload, workflow, event_name)


def concurrency_key(event: TriggerEvent) -> str:
    """Cancellation group: workflow plus PR number, falling back to the ref."""
    scope = event.pull_request_number or event.ref
    return f"{event.workflow}-{scope}"


def should_trigger(event: TriggerEvent, watched_branch: str) -> bool:
    """Only pushes to the watched branch start a run."""
    if event.event_name != "push":
        logger.info("Ignoring %s event", event.event_name)
        return False
    if event.branch != watched_branch:
        logger.info("Ignoring push to %s (watching %s)", event.ref, watched_branch)
        return False
    return True
