"""Tests for per-interview timer tasks."""

from __future__ import annotations

import asyncio

import pytest

from models.errors import SchedulingError
from services.task_registry import TaskRegistry


async def _forever(log, name):
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        log.append(f"{name} cancelled")
        raise


class TestTaskRegistry:
    @pytest.mark.asyncio
    async def test_cancel_stops_every_timer_of_an_interview(self):
        log = []
        registry = TaskRegistry()
        registry.spawn("INT-1", "sla", _forever(log, "sla"))
        registry.spawn("INT-1", "join", _forever(log, "join"))
        other = registry.spawn("INT-2", "sla", _forever(log, "other"))
        await asyncio.sleep(0)

        assert registry.running("INT-1") == ["join", "sla"]
        assert registry.cancel("INT-1") == 2
        await asyncio.sleep(0)

        assert sorted(log) == ["join cancelled", "sla cancelled"]
        assert registry.running("INT-1") == []
        assert not other.done()
        await registry.shutdown()
        assert other.cancelled()

    @pytest.mark.asyncio
    async def test_spawn_replaces_same_name(self):
        log = []
        registry = TaskRegistry()
        first = registry.spawn("INT-1", "sla", _forever(log, "first"))
        await asyncio.sleep(0)
        registry.spawn("INT-1", "sla", _forever(log, "second"))
        await asyncio.sleep(0)

        assert first.cancelled()
        assert log == ["first cancelled"]
        assert registry.running("INT-1") == ["sla"]
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_finished_task_is_forgotten(self):
        registry = TaskRegistry()

        async def quick():
            return None

        task = registry.spawn("INT-1", "join", quick())
        await task
        await asyncio.sleep(0)

        assert registry.running("INT-1") == []
        assert registry.cancel_one("INT-1", "join") is False

    @pytest.mark.asyncio
    async def test_failures_are_reported(self):
        reported = []
        registry = TaskRegistry(report_error=reported.append)

        async def failing():
            raise SchedulingError("watcher broke", "interview", "INT-1")

        task = registry.spawn("INT-1", "sla", failing())
        with pytest.raises(SchedulingError):
            await task
        await asyncio.sleep(0)

        assert [str(e) for e in reported] == ["[interview:INT-1] watcher broke"]
