import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

import structlog

T = TypeVar("T")


class AcquisitionCoordinator(Generic[T]):
    """Run at most one acquisition per key at a time

    Concurrent callers for a key share the in-flight task's result, or its exception.
    The acquisition runs as its own task, so a cancelled caller leaves it running to
    completion. Nothing is remembered once a task settles.
    """

    def __init__(self) -> None:
        self.in_flight_tasks: dict[str, asyncio.Task[T]] = {}
        self.acquisitions: int = 0
        self.log: Any = structlog.get_logger().bind(component="coordinator")

    def in_flight(self, key: str) -> bool:
        task = self.in_flight_tasks.get(key)
        return task is not None and not task.done()

    async def run_exclusive(self, key: str, acquire: Callable[[], Awaitable[T]]) -> T:
        task: asyncio.Task[T] | None = self.in_flight_tasks.get(key)
        if task is None or task.done():
            self.acquisitions += 1
            task = asyncio.create_task(self._acquire(acquire), name=f"acquire-{key}")
            self.in_flight_tasks[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        else:
            self.log.debug("Joining in-flight acquisition", key=key)
        return await asyncio.shield(task)

    async def _acquire(self, acquire: Callable[[], Awaitable[T]]) -> T:
        return await acquire()

    def _release(self, key: str, task: asyncio.Task[T]) -> None:
        if self.in_flight_tasks.get(key) is task:
            del self.in_flight_tasks[key]
        if task.cancelled():
            self.log.debug("Acquisition cancelled", key=key)
        elif task.exception() is not None:
            # marks the exception retrieved, even if every waiter has gone away
            self.log.debug("Acquisition failed", key=key, error=str(task.exception()))
