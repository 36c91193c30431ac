# src/build/orchestrator.py - v1
"""Build orchestrator: produce a search-enabled site plus its SPA fallback page.

Drives the five build phases against the run's output directory:
  1. base_build         web bundle without the search index
  2. prebuild_index     host-native run that renders routes + writes the index
  3. fallback_snapshot  pre-search index.html -> 404.html
  4. final_build        web bundle again, now embedding the search index
  5. fallback_sync      search-enabled index.html -> 404.html

Static hosts with no server-side rewriting serve 404.html for unknown paths,
so it has to be a full entry page for the app. After phase 5 both entry
files are byte-identical and carry the search-enabled build.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from pagesflow.build.artifacts import ArtifactStore, file_digest
from pagesflow.build.commands import phase_invocations, render_command
from pagesflow.config.phases import BUILD_PHASES, PRE_SEARCH_INDEX, SEARCH_ENABLED_INDEX
from pagesflow.core.errors import BuildError, CommandFailedError, HandoffError
from pagesflow.core.models import PhaseResult
from pagesflow.logging.context import set_phase_context

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings
    from pagesflow.core.process import CommandRunner
    from pagesflow.pipeline.state import RunState

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Run the build phases in order for one pipeline run.

    Args:
        settings: Pipeline settings.
        runner: Command runner used for the build tools.
        source_dir: Application checkout; build tools run from here.
        artifacts: Per-run store for the named intermediate index snapshots.
        checkpoint: Called before and after every phase; raises to abort.
    """

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        source_dir: Path,
        artifacts: ArtifactStore,
        checkpoint: Callable[[], None] | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._source_dir = source_dir
        self._artifacts = artifacts
        self._checkpoint = checkpoint or (lambda: None)
        self._invocations = phase_invocations(settings)

    @property
    def output_dir(self) -> Path:
        return self._source_dir / self._settings.output_dir

    @property
    def index_path(self) -> Path:
        return self.output_dir / self._settings.index_file

    @property
    def fallback_path(self) -> Path:
        return self.output_dir / self._settings.fallback_file

    async def run(self, state: RunState) -> RunState:
        """Execute every build phase, then verify the hand-off invariants.

        Args:
            state: Run state; one PhaseResult is recorded per phase.

        Returns:
            The same state, with index/fallback digests filled in.

        Raises:
            BuildError: A phase failed or the output violates hand-off checks.
            RunCancelledError: Raised by the checkpoint at a phase boundary.
        """
        try:
            self._reset_output_dir()
        except OSError as exc:
            raise BuildError(BUILD_PHASES[0], f"cannot reset {self.output_dir}: {exc}") from exc

        for phase in BUILD_PHASES:
            self._checkpoint()
            set_phase_context(phase)
            start = time.monotonic()
            try:
                try:
                    digest = await getattr(self, phase)()
                except OSError as exc:
                    raise BuildError(phase, str(exc)) from exc
            except BuildError as exc:
                state.record_phase(
                    PhaseResult(
                        name=phase,
                        status="failed",
                        duration_ms=_elapsed_ms(start),
                        detail=str(exc),
                    )
                )
                raise
            state.record_phase(
                PhaseResult(
                    name=phase,
                    status="succeeded",
                    duration_ms=_elapsed_ms(start),
                    digest=digest,
                )
            )
            logger.info("Phase %s done in %dms", phase, _elapsed_ms(start))
            self._checkpoint()

        set_phase_context("handoff")
        state.index_digest = self.verify_handoff()
        state.fallback_digest = state.index_digest
        state.pre_search_digest = self._artifacts.digest_of(PRE_SEARCH_INDEX)
        return state

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def base_build(self) -> str:
        """Phase 1: web bundle without search."""
        await self._invoke("base_build")
        return self._require_index("base_build")

    async def prebuild_index(self) -> str | None:
        """Phase 2: host-native static generation writing the search index.

        An app with no routes produces an empty index; that is the build
        tool's concern and not treated as a failure here.
        """
        await self._invoke("prebuild_index")
        if self.index_path.is_file():
            return file_digest(self.index_path)
        return None

    async def fallback_snapshot(self) -> str:
        """Phase 3: save the pre-search index.html as 404.html."""
        self._require_index("fallback_snapshot")
        artifact = self._artifacts.capture(PRE_SEARCH_INDEX, self.index_path)
        shutil.copyfile(artifact.path, self.fallback_path)
        return artifact.digest

    async def final_build(self) -> str:
        """Phase 4: rebuild the web bundle with the search index in place."""
        await self._invoke("final_build")
        self._require_index("final_build")
        return self._artifacts.capture(SEARCH_ENABLED_INDEX, self.index_path).digest

    async def fallback_sync(self) -> str:
        """Phase 5: copy the search-enabled index.html over 404.html."""
        artifact = self._artifacts.get(SEARCH_ENABLED_INDEX)
        if artifact is None:
            raise BuildError("fallback_sync", f"{SEARCH_ENABLED_INDEX} was never captured")
        shutil.copyfile(artifact.path, self.fallback_path)
        return file_digest(self.fallback_path)

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def verify_handoff(self) -> str:
        """Check the output directory is ready to publish.

        Returns:
            Digest shared by index.html and 404.html.

        Raises:
            HandoffError: On any violated invariant.
        """
        return verify_output_dir(
            self.output_dir,
            self._settings,
            expected_digest=self._artifacts.digest_of(SEARCH_ENABLED_INDEX),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _invoke(self, phase: str) -> None:
        args = render_command(self._invocations[phase], self._settings)
        logger.info("Running %s: %s", phase, " ".join(args))
        try:
            await self._runner.run(args, cwd=self._source_dir)
        except CommandFailedError as exc:
            raise BuildError(phase, exc.diagnostic) from exc

    def _require_index(self, phase: str) -> str:
        if not self.index_path.is_file():
            raise BuildError(phase, f"{self.index_path} was not produced")
        return file_digest(self.index_path)

    def _reset_output_dir(self) -> None:
        """Start every run from an empty output directory.

        Leftovers such as a previous search_index.json would otherwise leak
        into the base build.
        """
        out = self.output_dir
        if out.is_dir():
            logger.debug("Removing previous output %s", out)
            shutil.rmtree(out)
        elif out.exists():
            out.unlink()
        out.mkdir(parents=True)


def verify_output_dir(
    output_dir: Path,
    settings: Settings,
    expected_digest: str | None = None,
) -> str:
    """Validate the hand-off invariants of a built output directory.

    Args:
        output_dir: Directory about to be published.
        settings: Provides entry file names and the optional search marker.
        expected_digest: Digest the entry pages must match, if known.

    Returns:
        Digest shared by the index and fallback pages.

    Raises:
        HandoffError: On any violated invariant.
    """
    index = output_dir / settings.index_file
    fallback = output_dir / settings.fallback_file
    for path in (index, fallback):
        if not path.is_file():
            raise HandoffError(f"{path} missing")

    index_digest = file_digest(index)
    if file_digest(fallback) != index_digest:
        raise HandoffError(
            f"{settings.fallback_file} differs from {settings.index_file}"
        )
    if expected_digest is not None and index_digest != expected_digest:
        raise HandoffError(
            f"{settings.index_file} is not the {SEARCH_ENABLED_INDEX}"
        )
    if settings.search_marker:
        marker = settings.search_marker.encode("utf-8")
        if marker not in index.read_bytes():
            raise HandoffError(
                f"{settings.index_file} lacks search marker {settings.search_marker!r}"
            )
    return index_digest


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
