# src/hookrelay/services/delivery_queue.py
"""Per-channel outbound delivery queue.

Every channel gets its own FIFO. Tasks in one channel run one at a time, in
submission order, separated by a fixed spacing interval so the upstream
per-channel rate limit is never hit. Different channels never wait on each
other. State is purely in-process: two relay processes posting to the same
channel are not coordinated.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from hookrelay.core.errors import UpstreamUnavailable
from hookrelay.core.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _PendingTask:
    run: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


@dataclass
class ChannelQueue:
    """Mutable state of one channel's queue."""

    channel_id: str
    pending: deque[_PendingTask] = field(default_factory=deque)
    processing: bool = False
    last_finished: float | None = None
    worker: asyncio.Task[None] | None = None
    idle_handle: asyncio.TimerHandle | None = None


class DeliveryQueue:
    """Serialises outbound sends per channel with a minimum spacing."""

    def __init__(
        self,
        *,
        spacing: float | None = None,
        idle_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.spacing = settings.send_spacing_seconds if spacing is None else spacing
        self.idle_timeout = settings.queue_idle_seconds if idle_timeout is None else idle_timeout
        self._clock = clock
        self._queues: dict[str, ChannelQueue] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._queues)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._queues

    def pending(self, channel_id: str) -> int:
        """Return how many tasks are waiting (not yet started) for a channel."""
        queue = self._queues.get(channel_id)
        return len(queue.pending) if queue else 0

    async def enqueue(self, channel_id: str, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` in the channel's queue and return its result.

        If the caller stops waiting, the task still runs; only its result is lost.
        """
        future = self.submit(channel_id, task)
        result: T = await asyncio.shield(future)
        return result

    def submit(self, channel_id: str, task: Callable[[], Awaitable[Any]]) -> asyncio.Future[Any]:
        """Queue ``task`` without waiting; returns the future of its result."""
        if self._closed:
            raise UpstreamUnavailable("Delivery queue is closed")

        loop = asyncio.get_running_loop()
        queue = self._queues.get(channel_id)
        if queue is None:
            queue = ChannelQueue(channel_id=channel_id)
            self._queues[channel_id] = queue
        if queue.idle_handle is not None:
            queue.idle_handle.cancel()
            queue.idle_handle = None

        future: asyncio.Future[Any] = loop.create_future()
        future.add_done_callback(_consume_exception)
        queue.pending.append(_PendingTask(run=task, future=future))

        if not queue.processing:
            queue.processing = True
            queue.worker = loop.create_task(self._drain(queue))
        return future

    async def _drain(self, queue: ChannelQueue) -> None:
        try:
            if queue.last_finished is not None:
                residual = self.spacing - (self._clock() - queue.last_finished)
                if residual > 0:
                    await asyncio.sleep(residual)

            while queue.pending:
                item = queue.pending.popleft()
                try:
                    result = await item.run()
                except asyncio.CancelledError:
                    if not item.future.done():
                        item.future.set_exception(UpstreamUnavailable("Delivery queue closed"))
                    raise
                except Exception as exc:
                    if not item.future.done():
                        item.future.set_exception(exc)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
                queue.last_finished = self._clock()

                if queue.pending:
                    await asyncio.sleep(self.spacing)
        finally:
            queue.processing = False
            queue.worker = None
            if self._closed:
                _fail_pending(queue)
            else:
                self._schedule_collection(queue)

    def _schedule_collection(self, queue: ChannelQueue) -> None:
        loop = asyncio.get_running_loop()
        queue.idle_handle = loop.call_later(self.idle_timeout, self._collect, queue)

    def _collect(self, queue: ChannelQueue) -> None:
        queue.idle_handle = None
        if self._queues.get(queue.channel_id) is not queue:
            return
        if queue.processing or queue.pending:
            return
        del self._queues[queue.channel_id]
        logger.debug("Collected idle delivery queue for channel %s", queue.channel_id)

    async def close(self) -> None:
        """Cancel timers and workers; waiting callers get ``UpstreamUnavailable``."""
        self._closed = True
        workers = []
        for queue in self._queues.values():
            if queue.idle_handle is not None:
                queue.idle_handle.cancel()
                queue.idle_handle = None
            if queue.worker is not None:
                queue.worker.cancel()
                workers.append(queue.worker)
            _fail_pending(queue)
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._queues.clear()


def _fail_pending(queue: ChannelQueue) -> None:
    while queue.pending:
        item = queue.pending.popleft()
        if not item.future.done():
            item.future.set_exception(UpstreamUnavailable("Delivery queue closed"))


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Mark the exception retrieved when the caller stopped waiting.
    if not future.cancelled():
        future.exception()
