"""Async concurrency limiting for per-item sub-work inside one invocation."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, TypeVar

from stance_pipeline.shared.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ConcurrencyLimiter:
    """Bounds the number of in-flight tasks, admitting waiters in FIFO order.

    A finished task (success or failure) hands its slot directly to the
    oldest waiter, so admission order is the order of ``limit()`` calls.
    """

    max_concurrency: int = 4
    _active: int = field(init=False, default=0, repr=False)
    _peak: int = field(init=False, default=0, repr=False)
    _waiters: Deque[asyncio.Future] = field(init=False, default_factory=deque, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.max_concurrency, int) or self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be a positive integer")

    async def limit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task()`` once a slot is free and return its outcome.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the task returns; its exception propagates to this
            caller only.
        """
        await self._acquire()
        try:
            return await task()
        finally:
            self._release()

    __call__ = limit

    async def _acquire(self) -> None:
        if self._active < self.max_concurrency and not self._waiters:
            self._active += 1
            self._peak = max(self._peak, self._active)
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        LOGGER.debug(
            "Limiter queueing task (active=%d, waiting=%d)",
            self._active,
            len(self._waiters),
        )
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over before cancellation landed.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def snapshot(self) -> dict[str, int]:
        """Return diagnostic information about the limiter state."""

        return {
            "max_concurrency": self.max_concurrency,
            "active": self._active,
            "waiting": self.waiting,
            "peak": self._peak,
        }
