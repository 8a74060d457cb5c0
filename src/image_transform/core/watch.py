"""Watch mode: filesystem events in, transform jobs out."""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .paths import PathLike
from .protocols import LoggerProtocol
from .sources import LocalFileDiscoveryService, is_hidden, source_matches, watch_root


class WatchEventKind(str, Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"


@dataclass(frozen=True)
class WatchEvent:
    kind: WatchEventKind
    path: str


_CLOSED = object()


async def wait_for_write_finish(
    path: str, stability_threshold: float = 2.0, poll_interval: float = 0.1
) -> bool:
    """
    Poll ``path`` until its size and mtime stop changing.

    Returns:
        ``True`` once the file has been stable for ``stability_threshold``
        seconds, ``False`` if it disappeared meanwhile.
    """
    loop = asyncio.get_running_loop()
    last = None
    stable_since = loop.time()
    while True:
        try:
            file_stat = await asyncio.to_thread(os.stat, path)
        except FileNotFoundError:
            return False
        current = (file_stat.st_size, file_stat.st_mtime_ns)
        now = loop.time()
        if current != last:
            last = current
            stable_since = now
        elif now - stable_since >= stability_threshold:
            return True
        await asyncio.sleep(poll_interval)


class _ForwardingEventHandler(FileSystemEventHandler):
    """Forward file events from the observer thread as ``(kind, path)``."""

    def __init__(self, emit: Callable[[WatchEventKind, str], None]) -> None:
        super().__init__()
        self._emit = emit

    def on_created(self, event) -> None:  # pragma: no cover - thin wrapper
        if not event.is_directory:
            self._emit(WatchEventKind.ADD, os.fsdecode(event.src_path))

    def on_modified(self, event) -> None:  # pragma: no cover - thin wrapper
        if not event.is_directory:
            self._emit(WatchEventKind.CHANGE, os.fsdecode(event.src_path))

    def on_deleted(self, event) -> None:  # pragma: no cover - thin wrapper
        if not event.is_directory:
            self._emit(WatchEventKind.UNLINK, os.fsdecode(event.src_path))

    def on_moved(self, event) -> None:  # pragma: no cover - thin wrapper
        if not event.is_directory:
            self._emit(WatchEventKind.UNLINK, os.fsdecode(event.src_path))
            self._emit(WatchEventKind.ADD, os.fsdecode(event.dest_path))


class WatchdogEventSource:
    """
    Async stream of ``WatchEvent`` for the files selected by ``sources``.

    A watchdog observer runs on its own thread; events are handed to the
    event loop with ``call_soon_threadsafe``. ``add`` and ``change`` are
    held back until the file has stopped growing; repeated events for a
    file that is still settling are folded into the first one. Dot-files
    and paths no source selects are dropped.
    """

    def __init__(
        self,
        sources: Sequence[str],
        base_dir: Optional[PathLike] = None,
        stability_threshold: float = 2.0,
        poll_interval: float = 0.1,
        logger: Optional[LoggerProtocol] = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.sources = list(sources)
        self.base_dir = base_dir
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self._logger = logger
        self._observer_factory = observer_factory
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._pending: Dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def roots(self) -> List[str]:
        roots: List[str] = []
        for source in self.sources:
            root = watch_root(source, self.base_dir)
            if root not in roots:
                roots.append(root)
        return roots

    def matches(self, path: str) -> bool:
        if is_hidden(path):
            return False
        return any(source_matches(source, path, self.base_dir) for source in self.sources)

    async def events(self) -> AsyncIterator[WatchEvent]:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        if self._closed:
            return

        observer = self._observer_factory()
        handler = _ForwardingEventHandler(self._submit)
        for root in self.roots:
            if not os.path.isdir(root):
                if self._logger:
                    self._logger.warning(f"Watch root {root} is not a directory, skipping")
                continue
            if self._logger:
                self._logger.debug(f"Scheduling watchdog observer for {root}")
            observer.schedule(handler, root, recursive=True)
        observer.start()

        try:
            while True:
                event = await self._queue.get()
                if event is _CLOSED:
                    break
                yield event
        finally:
            observer.stop()
            await asyncio.to_thread(observer.join, 5)
            for task in list(self._pending.values()):
                task.cancel()
            self._pending.clear()

    def close(self) -> None:
        self._closed = True
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)

    def _submit(self, kind: WatchEventKind, path: str) -> None:
        # Runs on the observer thread.
        if self._loop is None or self._loop.is_closed():
            return
        event = WatchEvent(kind, os.path.normpath(path))
        self._loop.call_soon_threadsafe(self._dispatch, event)

    def _dispatch(self, event: WatchEvent) -> None:
        if not self.matches(event.path):
            return
        if event.kind is WatchEventKind.UNLINK:
            pending = self._pending.pop(event.path, None)
            if pending is not None:
                pending.cancel()
            self._queue.put_nowait(event)
            return
        if event.path in self._pending:
            return
        self._pending[event.path] = asyncio.get_running_loop().create_task(self._settle(event))

    async def _settle(self, event: WatchEvent) -> None:
        try:
            if await wait_for_write_finish(
                event.path, self.stability_threshold, self.poll_interval
            ):
                self._queue.put_nowait(event)
        finally:
            if self._pending.get(event.path) is asyncio.current_task():
                del self._pending[event.path]


class WatchBridge:
    """
    Turns watch events into transform jobs.

    Every ``add`` or ``change`` for a matching path hands the path to
    ``enqueue``, even if an earlier job for the same path is still
    running. ``unlink`` is only logged.
    """

    def __init__(
        self,
        enqueue: Callable[[str], object],
        logger: LoggerProtocol,
        discovery: Optional[LocalFileDiscoveryService] = None,
        sources: Optional[Sequence[str]] = None,
    ):
        self._enqueue = enqueue
        self._logger = logger
        self._discovery = discovery
        self.sources = list(sources or [])
        self.enqueued = 0

    @property
    def base_dir(self) -> Optional[PathLike]:
        return self._discovery.base_dir if self._discovery else None

    def matches(self, path: str) -> bool:
        if is_hidden(path):
            return False
        if not self.sources:
            return True
        return any(source_matches(source, path, self.base_dir) for source in self.sources)

    async def process_initial(self) -> int:
        """Queue every file the sources currently select."""
        if self._discovery is None:
            return 0
        files = await asyncio.to_thread(self._discovery.discover_files, self.sources)
        self._logger.info(f"Found {len(files)} existing file(s)")
        for path in files:
            self._submit(path)
        return len(files)

    def handle(self, event: WatchEvent) -> bool:
        """Route one event; returns whether a job was queued."""
        if not self.matches(event.path):
            self._logger.debug(f"Ignoring {event.kind.value} for {event.path}")
            return False
        if event.kind is WatchEventKind.UNLINK:
            self._logger.info(f"File removed: {event.path}")
            return False
        verb = "added" if event.kind is WatchEventKind.ADD else "changed"
        self._logger.info(f"File {verb}: {event.path}")
        self._submit(event.path)
        return True

    async def run(self, events: AsyncIterator[WatchEvent], initial: bool = False) -> None:
        """Consume ``events`` until the stream ends."""
        if initial:
            await self.process_initial()
        async for event in events:
            self.handle(event)

    def _submit(self, path: str) -> None:
        self.enqueued += 1
        self._enqueue(path)
