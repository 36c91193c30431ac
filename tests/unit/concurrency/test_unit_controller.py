# tests/unit/concurrency/test_unit_controller.py - v1
"""Tests for concurrency/controller.py - keyed registry and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from pagesflow.concurrency.controller import ConcurrencyController, RunHandle
from pagesflow.core.errors import RunCancelledError


class TestRunHandle:
    def test_checkpoint_passes_when_active(self):
        RunHandle(run_id="a", key="k").checkpoint()

    def test_checkpoint_raises_after_cancel(self):
        h = RunHandle(run_id="a", key="k")
        h.cancel(superseded_by="b")
        with pytest.raises(RunCancelledError) as exc_info:
            h.checkpoint()
        assert exc_info.value.superseded_by == "b"

    def test_first_cancel_wins(self):
        h = RunHandle(run_id="a", key="k")
        h.cancel(superseded_by="b")
        h.cancel(superseded_by="c")
        assert h.superseded_by == "b"


class TestConcurrencyController:
    @pytest.mark.asyncio
    async def test_start_sets_running(self):
        ctl = ConcurrencyController()
        h = await ctl.start("a", "wf-refs/heads/main")
        assert ctl.status("wf-refs/heads/main") == "running"
        assert ctl.active("wf-refs/heads/main") is h

    @pytest.mark.asyncio
    async def test_new_run_cancels_active(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k")
        b = await ctl.start("b", "k")

        assert a.cancelled
        assert a.superseded_by == "b"
        assert not b.cancelled
        assert ctl.active("k") is b

    @pytest.mark.asyncio
    async def test_groups_independent(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k1")
        await ctl.start("b", "k2")
        assert not a.cancelled

    @pytest.mark.asyncio
    async def test_finish_resets_to_idle(self):
        ctl = ConcurrencyController()
        h = await ctl.start("a", "k")
        assert await ctl.finish(h, "succeeded") is True
        assert ctl.status("k") == "idle"
        assert ctl.last_status("k") == "succeeded"

    @pytest.mark.asyncio
    async def test_finish_of_superseded_run_keeps_newer(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k")
        b = await ctl.start("b", "k")

        assert await ctl.finish(a, "cancelled") is False
        assert ctl.active("k") is b
        assert ctl.status("k") == "running"

    @pytest.mark.asyncio
    async def test_publish_slot_rejects_cancelled(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k")
        await ctl.start("b", "k")

        entered = False
        with pytest.raises(RunCancelledError):
            async with ctl.publish_slot(a):
                entered = True
        assert entered is False

    @pytest.mark.asyncio
    async def test_publish_slot_serializes(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k")
        inside: list[str] = []
        release = asyncio.Event()

        async def publish_a():
            async with ctl.publish_slot(a):
                inside.append("a-in")
                await release.wait()
                inside.append("a-out")

        task_a = asyncio.create_task(publish_a())
        await asyncio.sleep(0)
        b = await ctl.start("b", "k")

        async def publish_b():
            async with ctl.publish_slot(b):
                inside.append("b-in")

        task_b = asyncio.create_task(publish_b())
        await asyncio.sleep(0)
        assert inside == ["a-in"]

        release.set()
        await asyncio.gather(task_a, task_b)
        assert inside == ["a-in", "a-out", "b-in"]

    @pytest.mark.asyncio
    async def test_wait_cancelled(self):
        ctl = ConcurrencyController()
        a = await ctl.start("a", "k")
        waiter = asyncio.create_task(a.wait_cancelled())
        await ctl.start("b", "k")
        await asyncio.wait_for(waiter, timeout=1)


class TestSharedRegistry:
    """Two controllers on one state_dir behave like two CLI processes."""

    @pytest.mark.asyncio
    async def test_run_in_other_process_is_superseded(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "wf-refs/heads/main")
        await second.start("b", "wf-refs/heads/main")

        with pytest.raises(RunCancelledError) as exc_info:
            a.checkpoint()
        assert exc_info.value.superseded_by == "b"
        assert first.active_run_id("wf-refs/heads/main") == "b"

    @pytest.mark.asyncio
    async def test_other_groups_untouched(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "wf-refs/heads/main")
        await second.start("b", "wf-42")
        a.checkpoint()

    @pytest.mark.asyncio
    async def test_finish_only_clears_own_pointer(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "k")
        b = await second.start("b", "k")

        assert await first.finish(a, "cancelled") is False
        assert second.status("k") == "running"
        assert await second.finish(b, "succeeded") is True
        assert first.status("k") == "idle"

    @pytest.mark.asyncio
    async def test_superseded_after_successor_finished(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "k")
        b = await second.start("b", "k")
        await second.finish(b, "succeeded")

        with pytest.raises(RunCancelledError):
            a.checkpoint()
        assert a.superseded_by == "b"

    @pytest.mark.asyncio
    async def test_publish_slot_rejects_run_superseded_elsewhere(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "k")
        await second.start("b", "k")

        with pytest.raises(RunCancelledError):
            async with first.publish_slot(a):
                pass

    @pytest.mark.asyncio
    async def test_publish_slot_serializes_across_processes(self, tmp_path):
        first, second = ConcurrencyController(tmp_path), ConcurrencyController(tmp_path)
        a = await first.start("a", "k")
        inside: list[str] = []
        release = asyncio.Event()

        async def publish_a():
            async with first.publish_slot(a):
                inside.append("a-in")
                await release.wait()
                inside.append("a-out")

        task_a = asyncio.create_task(publish_a())
        await asyncio.sleep(0.05)
        b = await second.start("b", "k")

        async def publish_b():
            async with second.publish_slot(b):
                inside.append("b-in")

        task_b = asyncio.create_task(publish_b())
        await asyncio.sleep(0.2)
        assert inside == ["a-in"]

        release.set()
        await asyncio.wait_for(asyncio.gather(task_a, task_b), timeout=5)
        assert inside == ["a-in", "a-out", "b-in"]

    @pytest.mark.asyncio
    async def test_keys_map_to_safe_file_names(self, tmp_path):
        ctl = ConcurrencyController(tmp_path)
        await ctl.start("a", "github pages-refs/heads/feature/x")
        (pointer,) = tmp_path.glob("*.active")
        assert pointer.parent == tmp_path
        assert "/" not in pointer.name
