# src/core/process.py - v1
"""Async subprocess execution for external tools (rustup, cargo, dx, git).

All external collaborators are driven through CommandRunner so tests can
substitute a fake that simulates the tools on the filesystem.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path

from pagesflow.core.errors import CommandFailedError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a single external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class CommandRunner:
    """Run external commands with asyncio subprocesses.

    Args:
        env: Extra environment variables merged over os.environ.
    """

    env: dict[str, str] = field(default_factory=dict)

    def _merged_env(self, extra: dict[str, str] | None) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self.env)
        if extra:
            merged.update(extra)
        return merged

    def which(self, binary: str) -> str | None:
        """Resolve a binary on the runner's PATH."""
        return shutil.which(binary, path=self._merged_env(None).get("PATH"))

    async def run(
        self,
        args: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Execute a command and capture its output.

        Args:
            args: Program and arguments.
            cwd: Working directory.
            env: Extra environment variables for this call only.
            check: Raise CommandFailedError on a non-zero exit.

        Returns:
            CommandResult with captured stdout/stderr.

        Raises:
            CommandFailedError: Program missing, or non-zero exit with check=True.
        """
        logger.debug("exec: %s (cwd=%s)", " ".join(args), cwd)
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd) if cwd is not None else None,
                env=self._merged_env(env),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise CommandFailedError(f"command not found: {args[0]}") from exc

        try:
            out, err = await proc.communicate()
        except asyncio.CancelledError:
            # A timed-out or cancelled run must not leave the tool running.
            _kill_group(proc)
            await proc.wait()
            logger.warning("Killed %s after cancellation", args[0])
            raise

        result = CommandResult(
            args=list(args),
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.debug(
            "exit %d: %s",
            result.returncode,
            args[0],
            extra={
                "command": " ".join(args),
                "returncode": result.returncode,
                "duration_ms": result.duration_ms,
            },
        )
        if check and not result.ok:
            raise CommandFailedError(
                f"{args[0]} exited with {result.returncode}", result=result
            )
        return result


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the child's whole process group (git and dx spawn helpers)."""
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
