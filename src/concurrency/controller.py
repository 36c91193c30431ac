# src/concurrency/controller.py - v1
"""Run concurrency controller: one active run per concurrency group.

A keyed registry maps concurrency key -> active RunHandle. Starting a run
swaps itself in under a lock and cancels whoever was there; finishing only
clears the slot if the finishing handle is still the active one. Cancellation
is cooperative: runs call RunHandle.checkpoint() at phase boundaries.

Group lifecycle: idle -> running -> (succeeded | failed | cancelled) -> idle.

With a state_dir the registry is shared by every process pointed at it, so
separate `pagesflow run` invocations for one group supersede each other:

  <state_dir>/<slug>.active        "<run_id> <status>" of the group's latest run
  <state_dir>/<slug>.lock          guards updates to the pointer
  <state_dir>/<slug>.publish.lock  held for the duration of a publish

A run in another process learns it was superseded at its next checkpoint,
when the pointer names a different run. The pointer outlives the run it
names, so a superseded run still sees its successor after that one ends.
"""

from __future__ import annotations

import asyncio
import fcntl
import hashlib
import logging
import os
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from pagesflow.core.errors import RunCancelledError
from pagesflow.core.models import RunStatus

logger = logging.getLogger(__name__)

GroupStatus = Literal["idle", "running"]

_LOCK_POLL_SECONDS = 0.05


@dataclass(eq=False)
class RunHandle:
    """Cancellation handle for one run in a concurrency group.

    Attributes:
        pointer: Shared active-run file, when the group is file-backed.
    """

    run_id: str
    key: str
    superseded_by: str | None = None
    pointer: Path | None = None
    _cancelled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, superseded_by: str | None = None) -> None:
        if not self.cancelled:
            self.superseded_by = superseded_by
            self._cancelled.set()

    def checkpoint(self) -> None:
        """Raise RunCancelledError if this run has been cancelled."""
        if not self.cancelled and self.pointer is not None:
            owner, _ = _read_pointer(self.pointer)
            if owner is not None and owner != self.run_id:
                logger.info("Run %s superseded by %s (shared registry)", self.run_id, owner)
                self.cancel(superseded_by=owner)
        if self.cancelled:
            raise RunCancelledError(self.run_id, self.superseded_by)

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()


@dataclass
class _Group:
    active: RunHandle | None = None
    last_status: RunStatus | None = None
    publish_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ConcurrencyController:
    """Registry of concurrency groups.

    Args:
        state_dir: Directory shared with other processes. None keeps the
            registry in this process only.
    """

    def __init__(self, state_dir: Path | None = None) -> None:
        self._groups: dict[str, _Group] = {}
        self._lock = asyncio.Lock()
        self._state_dir = state_dir

    @property
    def state_dir(self) -> Path | None:
        return self._state_dir

    async def start(self, run_id: str, key: str) -> RunHandle:
        """Register a new run as the group's active run.

        Any run already active in the group is cancelled; the new run never
        queues behind it.
        """
        handle = RunHandle(run_id=run_id, key=key, pointer=self._pointer(key))
        async with self._lock:
            group = self._groups.setdefault(key, _Group())
            previous = group.active
            group.active = handle
            if handle.pointer is not None:
                async with _file_lock(self._path(key, ".lock")):
                    _write_pointer(handle.pointer, run_id, "running")
        if previous is not None:
            logger.info(
                "Run %s supersedes %s in group %s", run_id, previous.run_id, key
            )
            previous.cancel(superseded_by=run_id)
        return handle

    async def finish(self, handle: RunHandle, status: RunStatus) -> bool:
        """Mark a run finished; reset the group to idle if it was still active.

        Returns:
            True if the group was reset, False if a newer run owns it.
        """
        async with self._lock:
            if handle.pointer is not None:
                async with _file_lock(self._path(handle.key, ".lock")):
                    owner, _ = _read_pointer(handle.pointer)
                    if owner == handle.run_id:
                        _write_pointer(handle.pointer, handle.run_id, status)
                    else:
                        return False
            group = self._groups.get(handle.key)
            if group is None or group.active is not handle:
                return False
            group.active = None
            group.last_status = status
        logger.debug("Group %s idle after %s (%s)", handle.key, handle.run_id, status)
        return True

    def active(self, key: str) -> RunHandle | None:
        group = self._groups.get(key)
        return group.active if group else None

    def active_run_id(self, key: str) -> str | None:
        """Run id of the group's active run, in any process sharing state_dir."""
        pointer = self._pointer(key)
        if pointer is not None:
            owner, status = _read_pointer(pointer)
            return owner if status == "running" else None
        handle = self.active(key)
        return handle.run_id if handle else None

    def status(self, key: str) -> GroupStatus:
        return "running" if self.active_run_id(key) is not None else "idle"

    def last_status(self, key: str) -> RunStatus | None:
        group = self._groups.get(key)
        return group.last_status if group else None

    @asynccontextmanager
    async def publish_slot(self, handle: RunHandle) -> AsyncIterator[None]:
        """Hold the group's publish lock for the duration of a publish.

        Raises:
            RunCancelledError: If the run was cancelled before or while
                waiting for the slot.
        """
        handle.checkpoint()
        async with self._lock:
            group = self._groups.setdefault(handle.key, _Group())
        async with group.publish_lock:
            if self._state_dir is None:
                handle.checkpoint()
                yield
                return
            async with _file_lock(self._path(handle.key, ".publish.lock")):
                handle.checkpoint()
                yield

    def _path(self, key: str, suffix: str) -> Path:
        assert self._state_dir is not None
        return self._state_dir / f"{_slug(key)}{suffix}"

    def _pointer(self, key: str) -> Path | None:
        if self._state_dir is None:
            return None
        return self._path(key, ".active")


def _slug(key: str) -> str:
    """Filesystem-safe name for a concurrency key."""
    readable = re.sub(r"[^A-Za-z0-9._-]+", "_", key).strip("_")[:60]
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:10]
    return f"{readable}-{digest}"


def _read_pointer(path: Path) -> tuple[str | None, str | None]:
    """Return (run_id, status) from an active-run file."""
    try:
        parts = path.read_text(encoding="utf-8").split()
    except FileNotFoundError:
        return None, None
    if not parts:
        return None, None
    return parts[0], (parts[1] if len(parts) > 1 else "running")


def _write_pointer(path: Path, run_id: str, status: str) -> None:
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    tmp.write_text(f"{run_id} {status}\n", encoding="utf-8")
    os.replace(tmp, path)


@asynccontextmanager
async def _file_lock(path: Path) -> AsyncIterator[None]:
    """Exclusive flock on path, polled so the event loop keeps running."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fh = path.open("a+")
    try:
        while True:
            try:
                fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                await asyncio.sleep(_LOCK_POLL_SECONDS)
        try:
            yield
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)
    finally:
        fh.close()
