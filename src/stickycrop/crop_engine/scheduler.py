"""Deferred work queue with epoch-based cancellation.

Work that must observe the renderer after its current transform/render cycle
settles is queued here instead of being delayed by wall-clock timers. Every
task remembers the session epoch that was current when it was scheduled; a
task whose epoch is older than the current one is discarded when it comes up.

When an asyncio loop is running (NiceGUI), the queue drains itself via
``loop.call_soon``, i.e. right after the current synchronous turn. Without a
running loop, tasks wait until ``flush()`` is called.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque

from stickycrop.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DeferredTask:
    epoch: int
    fn: Callable[[], None]
    label: str = ""


class DeferredScheduler:
    """FIFO of deferred callables tagged with a monotonic session epoch."""

    def __init__(self) -> None:
        self._epoch: int = 0
        self._queue: Deque[DeferredTask] = deque()
        self._drain_scheduled = False
        self._draining = False

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def begin_session(self) -> int:
        """Start a new session; everything queued so far becomes stale."""
        self._epoch += 1
        return self._epoch

    def schedule(self, fn: Callable[[], None], *, label: str = "") -> DeferredTask:
        """Queue `fn` to run after the current turn, tagged with the current epoch."""
        task = DeferredTask(epoch=self._epoch, fn=fn, label=label)
        self._queue.append(task)
        self._request_drain()
        return task

    def is_stale(self, task: DeferredTask) -> bool:
        return task.epoch != self._epoch

    def flush(self) -> int:
        """Run queued tasks in order; return how many actually ran.

        Tasks queued while flushing run in the same flush. A task that raises
        is logged and does not stop the remaining ones.
        """
        if self._draining:
            return 0
        self._draining = True
        self._drain_scheduled = False
        ran = 0
        try:
            while self._queue:
                task = self._queue.popleft()
                if self.is_stale(task):
                    logger.debug(
                        f"discarding stale task '{task.label}' "
                        f"(epoch {task.epoch} < {self._epoch})"
                    )
                    continue
                try:
                    task.fn()
                except Exception:
                    logger.exception(f"Error in deferred task '{task.label}'")
                ran += 1
        finally:
            self._draining = False
        return ran

    def cancel_all(self) -> None:
        self._queue.clear()

    def _request_drain(self) -> None:
        if self._drain_scheduled or self._draining:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: caller drains explicitly with flush().
            return
        self._drain_scheduled = True
        loop.call_soon(self.flush)
