"""Bounded-concurrency job queue for asyncio tasks."""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar

from .protocols import LoggerProtocol

T = TypeVar("T")

JobFactory = Callable[[], Awaitable[T]]


class Limiter:
    """Run coroutine factories with at most ``concurrency`` in flight."""

    def __init__(self, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self.active = 0

    async def run(self, factory: JobFactory[T]) -> T:
        async with self._semaphore:
            self.active += 1
            try:
                return await factory()
            finally:
                self.active -= 1

    async def gather(self, factories: List[JobFactory[T]]) -> List[T]:
        """Run all factories under the limit; results keep input order."""
        return list(await asyncio.gather(*(self.run(factory) for factory in factories)))


class JobQueue:
    """
    Admits at most ``concurrency`` jobs at once, like a p-queue.

    ``add`` schedules immediately and never blocks; ``on_idle`` resolves
    once every admitted and queued job, including jobs added while
    waiting, has finished. A failing job is logged and counted; it never
    stops the queue.
    """

    def __init__(self, concurrency: int = 1, logger: Optional[LoggerProtocol] = None):
        self._limiter = Limiter(concurrency)
        self._logger = logger
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self.completed = 0
        self.failed = 0

    @property
    def concurrency(self) -> int:
        return self._limiter.concurrency

    @property
    def pending(self) -> int:
        """Jobs added but not yet finished (running or waiting)."""
        return len(self._tasks)

    @property
    def active(self) -> int:
        return self._limiter.active

    def add(self, factory: JobFactory[T], name: Optional[str] = None) -> "asyncio.Task[Optional[T]]":
        """Schedule ``factory``; must be called from the event loop thread."""
        task = asyncio.get_running_loop().create_task(self._run(factory, name), name=name)
        self._tasks.add(task)
        self._idle.clear()
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, factory: JobFactory[T], name: Optional[str]) -> Optional[T]:
        try:
            result = await self._limiter.run(factory)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.failed += 1
            if self._logger:
                self._logger.error(f"Job {name or 'unnamed'} failed: {exc}", exc_info=True)
            return None
        self.completed += 1
        return result

    def _on_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if not self._tasks:
            self._idle.set()

    async def on_idle(self) -> None:
        """Wait until the queue has drained."""
        while self._tasks:
            await self._idle.wait()
