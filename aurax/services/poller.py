"""Poll a task until it reaches a terminal status or the deadline passes."""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from ..errors import TaskTimeoutError
from ..models.schemas import PollConfig, TaskStatusSnapshot

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[TaskStatusSnapshot]]


class PollState(Enum):
    RUNNING = "running"
    TERMINAL_REACHED = "terminal_reached"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class TaskPoller:
    """One polling session for one task.

    The fetcher is invoked once per tick. A snapshot satisfying
    ``config.is_terminal`` is returned even when the deadline passed on the same
    tick; the deadline is only checked for non-terminal observations. Fetch
    failures propagate unchanged and end the session.
    """

    def __init__(self, fetch: Fetcher, task_id: str, config: PollConfig | None = None) -> None:
        self._fetch = fetch
        self.task_id = task_id
        self.config = config or PollConfig()
        self.state = PollState.RUNNING
        self.attempts = 0
        self.last_snapshot: TaskStatusSnapshot | None = None

    async def run(self) -> TaskStatusSnapshot:
        if self.state is not PollState.RUNNING or self.attempts:
            raise RuntimeError("TaskPoller instances are single-use")

        started = time.monotonic()
        while True:
            self.attempts += 1
            try:
                snapshot = await self._fetch(self.task_id)
            except Exception:
                self.state = PollState.ERRORED
                logger.info("Polling task %s aborted on attempt %d", self.task_id, self.attempts)
                raise
            self.last_snapshot = snapshot

            if snapshot.status and self.config.is_terminal(snapshot.status):
                self.state = PollState.TERMINAL_REACHED
                logger.info(
                    "Task %s reached %s after %d fetches",
                    self.task_id,
                    snapshot.status,
                    self.attempts,
                )
                return snapshot

            elapsed = time.monotonic() - started
            if elapsed > self.config.timeout:
                self.state = PollState.TIMED_OUT
                raise TaskTimeoutError(
                    f"Task {self.task_id} still {snapshot.status!r} after {elapsed:.1f}s "
                    f"(timeout {self.config.timeout:.1f}s)",
                    error=snapshot,
                )

            logger.debug(
                "Task %s is %s; next poll in %.2fs", self.task_id, snapshot.status, self.config.interval
            )
            await asyncio.sleep(self.config.interval)


async def poll_task(fetch: Fetcher, task_id: str, config: PollConfig | None = None) -> TaskStatusSnapshot:
    """Convenience wrapper running a fresh :class:`TaskPoller`."""

    return await TaskPoller(fetch, task_id, config).run()
