# src/pipeline/runner.py - v1
"""Pipeline runner: execute one run from trigger to publish.

Sequence per run, strictly one phase at a time:
  provision -> five build phases -> handoff -> publish

Cross-run behavior comes from the ConcurrencyController: starting a run
cancels the active run of the same group, and every phase boundary is a
checkpoint where a cancelled run stops. A cancelled run never reaches
publish, and the publish itself runs inside the group's publish slot.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from pagesflow.build.artifacts import ArtifactStore
from pagesflow.build.orchestrator import BuildOrchestrator, verify_output_dir
from pagesflow.concurrency.controller import ConcurrencyController, RunHandle
from pagesflow.config.phases import SEARCH_ENABLED_INDEX
from pagesflow.core.errors import (
    HandoffError,
    PagesflowError,
    RunCancelledError,
    RunTimeoutError,
)
from pagesflow.core.models import PhaseResult
from pagesflow.core.process import CommandRunner
from pagesflow.logging.context import clear_context, set_phase_context, set_run_context
from pagesflow.pipeline.state import RunState
from pagesflow.pipeline.trigger import TriggerEvent, concurrency_key
from pagesflow.publish.executor import DeployExecutor
from pagesflow.toolchain.provisioner import ToolchainProvisioner

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineRunner:
    """Run the full build-and-publish sequence for trigger events.

    Args:
        settings: Pipeline settings.
        controller: Shared concurrency controller; one per process.
        runner: Command runner for every external tool.
        provision: Run the toolchain provisioner first.
        publish: Push to the hosting branch; False stops after handoff.
    """

    def __init__(
        self,
        settings: Settings,
        controller: ConcurrencyController | None = None,
        runner: CommandRunner | None = None,
        provision: bool = True,
        publish: bool = True,
    ) -> None:
        self._settings = settings
        self._controller = controller or ConcurrencyController()
        self._runner = runner or CommandRunner()
        self._provision = provision
        self._publish = publish

    @property
    def controller(self) -> ConcurrencyController:
        return self._controller

    async def execute(self, event: TriggerEvent, source_dir: Path) -> RunState:
        """Execute one run to a terminal status.

        Failures are captured on the returned state rather than raised, so a
        caller driving several runs sees each outcome.

        Args:
            event: The push that triggered this run.
            source_dir: The run's own application checkout.

        Returns:
            RunState with status succeeded, failed or cancelled.
        """
        state = RunState(
            ref=event.ref,
            sha=event.sha,
            concurrency_key=concurrency_key(event),
            source_dir=source_dir,
        )
        handle = await self._controller.start(state.run_id, state.concurrency_key)
        set_run_context(state.run_id, state.concurrency_key)
        state.transition("running")
        logger.info("Run %s started for %s", state.run_id, event.ref)

        scratch = self._settings.staging_root.expanduser() / state.run_id
        try:
            work = self._run_phases(state, handle, scratch)
            timeout = self._settings.run_timeout_seconds
            if timeout is not None:
                try:
                    await asyncio.wait_for(work, timeout=timeout)
                except asyncio.TimeoutError as exc:
                    raise RunTimeoutError(f"run exceeded {timeout:g}s") from exc
            else:
                await work
        except RunCancelledError as exc:
            state.superseded_by = exc.superseded_by
            state.transition("cancelled", error=str(exc))
            logger.info("Run %s cancelled", state.run_id)
        except PagesflowError as exc:
            state.transition("failed", error=str(exc))
            logger.error("Run %s failed: %s", state.run_id, exc)
        else:
            state.transition("succeeded")
            logger.info(
                "Run %s succeeded in %dms", state.run_id, state.duration_ms
            )
        finally:
            if not state.is_terminal:
                state.transition("failed", error="run aborted")
            await self._controller.finish(handle, state.status)
            shutil.rmtree(scratch, ignore_errors=True)
            set_phase_context(None)
            if self._settings.report_dir is not None:
                self._write_report(state, self._settings.report_dir)
            clear_context()

        return state

    async def _run_phases(self, state: RunState, handle: RunHandle, scratch: Path) -> None:
        settings = self._settings

        if self._provision:
            provisioner = ToolchainProvisioner(settings, self._runner)
            await self._phase(state, handle, "provision", provisioner.provision)

        artifacts = ArtifactStore(scratch / "artifacts")
        orchestrator = BuildOrchestrator(
            settings,
            self._runner,
            source_dir=state.source_dir,
            artifacts=artifacts,
            checkpoint=handle.checkpoint,
        )
        await orchestrator.run(state)

        async def handoff() -> str:
            return self._handoff(orchestrator.output_dir, scratch / "site", artifacts)

        state.handoff_dir = scratch / "site"
        await self._phase(state, handle, "handoff", handoff)

        if not self._publish:
            state.record_phase(PhaseResult(name="publish", status="skipped"))
            return

        deployer = DeployExecutor(settings, self._runner, scratch_root=scratch)
        async with self._controller.publish_slot(handle):
            set_phase_context("publish")
            start = time.monotonic()
            try:
                state.publish = await deployer.publish(
                    state.handoff_dir, state.source_dir, sha=state.sha
                )
            except PagesflowError as exc:
                state.record_phase(
                    PhaseResult(
                        name="publish", status="failed",
                        duration_ms=_elapsed_ms(start), detail=str(exc),
                    )
                )
                raise
            state.record_phase(
                PhaseResult(
                    name="publish", status="succeeded",
                    duration_ms=_elapsed_ms(start),
                    detail=state.publish.commit or "no changes",
                )
            )

    async def _phase(
        self,
        state: RunState,
        handle: RunHandle,
        name: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        handle.checkpoint()
        set_phase_context(name)
        start = time.monotonic()
        try:
            value = await fn()
        except PagesflowError as exc:
            state.record_phase(
                PhaseResult(
                    name=name, status="failed",
                    duration_ms=_elapsed_ms(start), detail=str(exc),
                )
            )
            raise
        state.record_phase(
            PhaseResult(
                name=name, status="succeeded",
                duration_ms=_elapsed_ms(start),
                digest=value if isinstance(value, str) else None,
            )
        )
        handle.checkpoint()
        return value

    def _write_report(self, state: RunState, report_dir: Path) -> None:
        from pagesflow.tracking.report import build_run_report, export_run_json

        path = report_dir / f"{state.run_id}.json"
        try:
            export_run_json(build_run_report(state), path)
        except OSError as exc:
            logger.warning("Could not write run report %s: %s", path, exc)

    def _handoff(self, output_dir: Path, dest: Path, artifacts: ArtifactStore) -> str:
        """Freeze the output directory into the run's read-only hand-off copy."""
        if dest.exists():
            shutil.rmtree(dest)
        try:
            shutil.copytree(output_dir, dest)
        except OSError as exc:
            raise HandoffError(f"cannot stage {output_dir}: {exc}") from exc
        return verify_output_dir(
            dest,
            self._settings,
            expected_digest=artifacts.digest_of(SEARCH_ENABLED_INDEX),
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
