import asyncio
import logging
from typing import Any, Coroutine


class TaskSpawner:
    """
    Starts fire-and-forget coroutines and keeps a strong reference to them
    until they finish.

    Used to write push notifications to other connections: the sender's
    handler schedules the write and carries on, so a receiver whose
    transport is paused never holds up the sender. Failures inside a
    spawned task are logged, never raised into the spawning code.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logging.getLogger("core.helpers.spawn")

    @property
    def remaining_tasks(self) -> int:
        return len(self._tasks)

    def on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            return

        if ex := task.exception():
            self._logger.error(
                f"Error occurred in task {task.get_name()}: {str(ex)}",
                exc_info=ex
            )

    def spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[Any]:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        task.add_done_callback(self.on_done)
        self._tasks.add(task)
        return task

    async def join(self) -> None:
        """Wait for every task spawned so far to complete."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()
