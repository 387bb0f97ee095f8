# src/arcweaver/orchestration/state.py
"""Per-novel batch state containers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from arcweaver.models import BatchState, BatchStatus


class NovelBatchContainer:
    """Batch state, guard lock and cancel signal for one novel.

    Only one batch per novel may hold ``lock``. The most recent
    :class:`BatchState` stays visible for status queries until a delayed
    reset returns the container to idle.
    """

    def __init__(
        self,
        novel_id: int,
        on_idle: Callable[[NovelBatchContainer], None] | None = None,
    ) -> None:
        """Initialize an idle container.

        Args:
            novel_id: Novel this container belongs to
            on_idle: Called when the container resets to idle
        """
        self.novel_id = novel_id
        self._on_idle = on_idle
        self.lock = asyncio.Lock()
        self.cancel_event = asyncio.Event()
        self.state: BatchState | None = None
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def busy(self) -> bool:
        return self.lock.locked()

    def begin(self, state: BatchState) -> None:
        """Install ``state`` for a new batch and clear any pending reset."""
        self._cancel_reset()
        self.cancel_event.clear()
        self.state = state

    def snapshot(self) -> BatchState:
        """Return a copy of the current state, or an idle one."""
        if self.state is None:
            return idle_state(self.novel_id)
        return self.state.model_copy()

    def schedule_reset(self, delay: float) -> None:
        """Return to idle after ``delay`` seconds."""
        self._cancel_reset()
        if delay <= 0:
            self.reset()
            return
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(delay, self.reset)

    def reset(self) -> None:
        self._reset_handle = None
        if self.busy:
            return
        self.state = None
        if self._on_idle is not None:
            self._on_idle(self)

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None


class BatchRegistry:
    """Maps novel ids to their :class:`NovelBatchContainer`.

    Containers exist only while a batch runs or its final state is still
    visible; a reset to idle removes them.
    """

    def __init__(self) -> None:
        self._containers: dict[int, NovelBatchContainer] = {}

    def container(self, novel_id: int) -> NovelBatchContainer:
        """Get or create the container for ``novel_id``.

        Args:
            novel_id: Novel identifier

        Returns:
            NovelBatchContainer for the specified novel
        """
        if novel_id not in self._containers:
            self._containers[novel_id] = NovelBatchContainer(novel_id, on_idle=self.discard)
        return self._containers[novel_id]

    def status(self, novel_id: int) -> BatchState:
        container = self._containers.get(novel_id)
        if container is None:
            return idle_state(novel_id)
        return container.snapshot()

    def __len__(self) -> int:
        return len(self._containers)

    def discard(self, container: NovelBatchContainer) -> None:
        """Forget ``container`` if it is still the one registered for its novel."""
        if self._containers.get(container.novel_id) is container:
            del self._containers[container.novel_id]

    def request_cancel(self, novel_id: int) -> bool:
        """Signal the running batch for ``novel_id`` to stop.

        Returns:
            True if a batch was running and has been signalled
        """
        container = self._containers.get(novel_id)
        if container is None or not container.busy:
            return False
        container.cancel_event.set()
        return True


def idle_state(novel_id: int) -> BatchState:
    return BatchState(novel_id=novel_id, chapters_to_generate=0, status=BatchStatus.IDLE)


__all__ = ["NovelBatchContainer", "BatchRegistry", "idle_state"]
