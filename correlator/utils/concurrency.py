"""Bounded fan-out helpers for outbound API calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Iterable, List, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WindowedPool(Generic[T, R]):
    """
    Run an async function over items in fixed-size windows.

    Each window runs its calls concurrently; windows run one after another,
    so at most ``window_size`` calls are in flight at any time. Exceptions
    are returned in place of results, never raised, so one failing call
    does not cancel the rest of its window.
    """

    def __init__(self, window_size: int):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self._semaphore = asyncio.Semaphore(window_size)
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _run_one(self, fn: Callable[[T], Awaitable[R]], item: T) -> R:
        async with self._semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await fn(item)
            finally:
                self.in_flight -= 1

    async def map(
        self,
        fn: Callable[[T], Awaitable[R]],
        items: Iterable[T],
    ) -> List[Union[R, BaseException]]:
        """Apply ``fn`` to every item, preserving input order in the results."""
        items = list(items)
        results: List[Union[R, BaseException]] = []

        for start in range(0, len(items), self.window_size):
            window = items[start:start + self.window_size]
            window_results = await asyncio.gather(
                *(self._run_one(fn, item) for item in window),
                return_exceptions=True,
            )
            results.extend(window_results)
            logger.debug(f"Window complete: {min(start + self.window_size, len(items))}/{len(items)}")

        return results
