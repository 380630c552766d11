"""Per-interview timer tasks (SLA watchers, join monitors)."""

import asyncio
import logging
from functools import partial
from typing import Callable, Coroutine, Optional

from models.errors import SchedulingError

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    asyncio tasks keyed by interview id and task name.

    Cancelling an interview cancels every timer it owns; a cancelled timer
    has no side effects.
    """

    def __init__(self, report_error: Optional[Callable[[SchedulingError], None]] = None):
        self.report_error = report_error
        self._tasks: dict[str, dict[str, asyncio.Task]] = {}

    def spawn(self, interview_id: str, name: str, coro: Coroutine) -> asyncio.Task:
        """Start a timer task, replacing a running one of the same name."""
        self.cancel_one(interview_id, name)
        task = asyncio.create_task(coro, name=f"{name}:{interview_id}")
        self._tasks.setdefault(interview_id, {})[name] = task
        task.add_done_callback(partial(self._finished, interview_id, name))
        return task

    def running(self, interview_id: str) -> list[str]:
        return sorted(
            name for name, task in self._tasks.get(interview_id, {}).items() if not task.done()
        )

    def cancel_one(self, interview_id: str, name: str) -> bool:
        task = self._tasks.get(interview_id, {}).pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel(self, interview_id: str) -> int:
        """Cancel every pending timer of an interview."""
        tasks = self._tasks.pop(interview_id, {})
        cancelled = 0
        for task in tasks.values():
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.info("Cancelled %d timer(s) of interview %s", cancelled, interview_id)
        return cancelled

    async def shutdown(self) -> None:
        tasks = [task for group in self._tasks.values() for task in group.values()]
        self._tasks = {}
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _finished(self, interview_id: str, name: str, task: asyncio.Task) -> None:
        group = self._tasks.get(interview_id)
        if group is not None and group.get(name) is task:
            del group[name]
            if not group:
                del self._tasks[interview_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Timer %s of interview %s failed", name, interview_id, exc_info=exc)
        if isinstance(exc, SchedulingError) and self.report_error is not None:
            self.report_error(exc)
