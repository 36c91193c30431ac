# src/config/phases.py - v1
"""Declarative phase table for a pipeline run.

Order matters: the build orchestrator and the runner both walk these lists
front to back, and the hand-off checks assume this exact sequence.
"""

from __future__ import annotations

# Build phases, in execution order.
BUILD_PHASES: list[str] = [
    "base_build",
    "prebuild_index",
    "fallback_snapshot",
    "final_build",
    "fallback_sync",
]

# Full run, in execution order.
RUN_PHASES: list[str] = [
    "provision",
    *BUILD_PHASES,
    "handoff",
    "publish",
]

# Phases that invoke the application build tool.
BUILD_TOOL_PHASES: frozenset[str] = frozenset(
    {"base_build", "prebuild_index", "final_build"}
)

# Named intermediate artifacts captured between phases.
PRE_SEARCH_INDEX = "pre-search index"
SEARCH_ENABLED_INDEX = "search-enabled index"
