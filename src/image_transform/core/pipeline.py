"""Transform pipeline: per-source state machine and memoized transform jobs."""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from .models import SourceDescriptor, TransformAction
from .protocols import ImageEngineProtocol


@dataclass(frozen=True)
class Unopened:
    path: str


@dataclass(frozen=True)
class Opened:
    handle: Any


@dataclass(frozen=True)
class Transformed:
    handle: Any


JobState = Union[Unopened, Opened, Transformed]


def open_state(engine: ImageEngineProtocol, state: Unopened) -> Opened:
    return Opened(engine.open(state.path))


def apply_action(engine: ImageEngineProtocol, handle: Any, action: TransformAction) -> Any:
    """Resize, then rotate; either step is skipped when absent."""
    if action.resize is not None and action.resize.applies:
        handle = engine.resize(handle, action.resize)
    if action.rotate is not None:
        handle = engine.rotate(handle, action.rotate)
    return handle


def transform_state(
    engine: ImageEngineProtocol,
    state: Opened,
    actions: Sequence[TransformAction],
) -> Transformed:
    """
    Fold ``actions`` left to right over a clone of the opened handle.

    With no actions the result is a plain clone, so encoders working on
    the result never touch the opened handle shared with sibling jobs.
    """
    handle = engine.clone(state.handle)
    if not actions:
        return Transformed(handle)

    # A handle inherited from an earlier action may still carry keep_meta.
    handle = engine.keep_metadata(handle, any(action.keep_meta for action in actions))
    for action in actions:
        handle = apply_action(engine, handle, action)
    return Transformed(handle)


class TransformJob:
    """Binds one source descriptor to one transform action (or none).

    The transformed handle is computed once, on first request, and
    memoized until ``use_source`` or ``release`` resets the job.
    """

    def __init__(
        self,
        engine: ImageEngineProtocol,
        descriptor: SourceDescriptor,
        base_handle: Optional[Any] = None,
        action: Optional[TransformAction] = None,
    ):
        self._engine = engine
        self.action = action
        self.descriptor = descriptor
        self._state: JobState = (
            Opened(base_handle) if base_handle is not None else Unopened(descriptor.file_path)
        )
        self._lock = asyncio.Lock()
        self._owned: Optional[Any] = None
        self.transform_count = 0

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def is_transformed(self) -> bool:
        return isinstance(self._state, Transformed)

    @property
    def label(self) -> Optional[str]:
        return self.action.tag if self.action else None

    @property
    def actions(self) -> Sequence[TransformAction]:
        return [self.action] if self.action is not None else []

    def use_source(
        self, descriptor: SourceDescriptor, base_handle: Optional[Any] = None
    ) -> "TransformJob":
        """Point the job at a new source, dropping any memoized result."""
        self.release()
        self.descriptor = descriptor
        self._state = (
            Opened(base_handle) if base_handle is not None else Unopened(descriptor.file_path)
        )
        return self

    async def transformed(self) -> Any:
        """Return the transformed handle, computing it on first call."""
        async with self._lock:
            state = self._state
            if isinstance(state, Transformed):
                return state.handle
            if isinstance(state, Unopened):
                state = await asyncio.to_thread(open_state, self._engine, state)
                self._owned = state.handle
                self._state = state
            self._state = await asyncio.to_thread(
                transform_state, self._engine, state, self.actions
            )
            self.transform_count += 1
            return self._state.handle

    async def tap(self) -> Any:
        """Independent copy of the transformed handle for one consumer."""
        handle = await self.transformed()
        return await asyncio.to_thread(self._engine.clone, handle)

    def release(self) -> None:
        """Free the memoized handle; the next request recomputes it."""
        state = self._state
        if isinstance(state, Transformed):
            self._engine.release(state.handle)
            self._state = Unopened(self.descriptor.file_path)
        if self._owned is not None:
            self._engine.release(self._owned)
            self._owned = None
