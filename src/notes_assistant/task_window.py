"""Bounded look-ahead over an ordered list of asynchronous jobs.

Results are consumed strictly in index order, but the jobs for the next few
items run concurrently: when item ``i`` is requested and has not been started
yet, items ``i`` to ``i + batch_size - 1`` are started together. At most
``batch_size`` jobs are ever in flight ahead of the consumer.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from . import constants

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class OrderedTaskWindow(Generic[T, R]):

    def __init__(self, fn: Callable[[T], Awaitable[R]], items: Sequence[T],
                 batch_size: int = constants.SUMMARY_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.fn = fn
        self.items = list(items)
        self.batch_size = batch_size
        self._tasks: list[asyncio.Task] = []

    @property
    def dispatched(self) -> int:
        return len(self._tasks)

    def _dispatch_from(self, i: int):
        end = min(i + self.batch_size, len(self.items))
        for j in range(i, end):
            self._tasks.append(asyncio.create_task(self.fn(self.items[j])))
        logger.debug(f"Dispatched items {i} to {end - 1}")

    async def result(self, i: int) -> R:
        """Result of item i. Must be called with i = 0, 1, 2, ... in order."""
        if not 0 <= i < len(self.items):
            raise IndexError(f"Item {i} out of range for {len(self.items)} items")
        if self.dispatched <= i:
            self._dispatch_from(i)
        return await self._tasks[i]

    def in_flight_ahead(self, i: int) -> int:
        """Number of dispatched jobs at or after index i."""
        return max(0, self.dispatched - i)

    async def drain(self):
        """Wait for every dispatched job. Results and errors of jobs nobody
        consumed are discarded."""
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            logger.debug(f"Draining {len(pending)} unconsumed tasks")
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.debug(f"Unconsumed task failed: {result!r}")
