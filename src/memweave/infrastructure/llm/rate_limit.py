"""
Shared rate-limit gate for one provider adapter.

Once a call observes a rate limit the gate records a reset time. Until that
time passes every new call is queued FIFO instead of reaching the backend.
A single drain task replays the queue after the reset time with a small gap
between requests, and re-arms the gate if a replayed call is limited again.
All gate state is mutated under one ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)

CallFactory = Callable[[], Awaitable[Any]]
RateLimitProbe = Callable[[BaseException], Optional[float]]


@dataclass
class _QueuedCall:
    call: CallFactory
    future: "asyncio.Future[Any]"
    context: str
    requeues: int = 0


class RateLimitGate:
    """
    Args:
        probe: returns the retry-after (seconds) for a rate-limit error, else None
        drain_interval: pause between replayed requests
        max_requeues: how often one queued call may be re-queued before failing
    """

    def __init__(self, probe: RateLimitProbe, drain_interval: float = 0.1, max_requeues: int = 3):
        self._probe = probe
        self._drain_interval = drain_interval
        self._max_requeues = max_requeues
        self._lock = asyncio.Lock()
        self._reset_at = 0.0
        self._queue: Deque[_QueuedCall] = deque()
        self._drain_task: Optional[asyncio.Task] = None

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_limited(self) -> bool:
        return self._reset_at > self._now()

    async def enqueue_if_limited(self, call: CallFactory, context: str) -> "Optional[asyncio.Future[Any]]":
        """
        Gate check and enqueue as one step.

        Returns a future for the queued call while the gate is closed, or None
        when the caller may go straight to the backend.
        """
        async with self._lock:
            if self._reset_at <= self._now() and not self._queue:
                return None
            return self._enqueue_locked(call, context)

    async def arm(self, retry_after: float) -> None:
        """Close the gate for ``retry_after`` seconds without queueing anything."""
        async with self._lock:
            self._arm_locked(retry_after)

    async def trip(self, retry_after: float, call: CallFactory, context: str) -> "asyncio.Future[Any]":
        """Close the gate for ``retry_after`` seconds and queue ``call``."""
        async with self._lock:
            self._arm_locked(retry_after)
            return self._enqueue_locked(call, context)

    def _arm_locked(self, retry_after: float) -> None:
        reset_at = self._now() + max(retry_after, 0.0)
        if reset_at > self._reset_at:
            self._reset_at = reset_at
            logger.warning(f"Rate limited, queueing requests for {retry_after:.1f}s")

    def _enqueue_locked(self, call: CallFactory, context: str) -> "asyncio.Future[Any]":
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.append(_QueuedCall(call=call, future=future, context=context))
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while True:
            async with self._lock:
                if not self._queue:
                    self._drain_task = None
                    return
                wait = self._reset_at - self._now()
                item = None if wait > 0 else self._queue.popleft()
            if item is None:
                await asyncio.sleep(wait)
                continue
            if item.future.done():
                continue

            try:
                result = await item.call()
            except Exception as e:
                retry_after = self._probe(e)
                if retry_after is not None and item.requeues < self._max_requeues:
                    item.requeues += 1
                    async with self._lock:
                        self._arm_locked(retry_after)
                        self._queue.appendleft(item)
                    continue
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            await asyncio.sleep(self._drain_interval)
