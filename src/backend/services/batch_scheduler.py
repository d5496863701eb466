"""
Batch Scheduler - bounded fan-out for per-day sub-fetches.

Trend series need one small fetch per day of the report window. Issuing them
all at once would exhaust the record store's connection pool, so they run in
fixed-size chunks: fetches inside a chunk run concurrently, chunks run one
after another, and results come back in input order.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from core.exceptions import ConfigurationError
from core.logging_config import ReportLogger

logger = logging.getLogger(__name__)
report_logger = ReportLogger("scheduler")

T = TypeVar("T")
R = TypeVar("R")


class BatchScheduler(Generic[T, R]):
    """Runs independent sub-fetches in ordered, size-bounded chunks."""

    def __init__(self, chunk_size: int = 5, retries: int = 1):
        if chunk_size < 1:
            raise ConfigurationError(f"Chunk size must be at least 1, got {chunk_size}")
        if retries < 0:
            raise ConfigurationError(f"Retries must not be negative, got {retries}")
        self.chunk_size = chunk_size
        self.retries = retries

    def chunks(self, items: Sequence[T]) -> List[Sequence[T]]:
        return [items[i:i + self.chunk_size] for i in range(0, len(items), self.chunk_size)]

    async def run(
        self,
        items: Sequence[T],
        fetch: Callable[[T], Awaitable[R]],
        fallback: Callable[[T], R],
        label: Optional[Callable[[T], str]] = None,
    ) -> List[R]:
        """
        Fetch every item with bounded concurrency.

        Args:
            items: Work items in the order results must be returned (e.g. days)
            fetch: Coroutine function producing the result for one item
            fallback: Produces the degraded result once retries are exhausted
            label: Human-readable item name for logs

        Returns:
            One result per item, in the same order as ``items``.
        """
        results: List[R] = []
        for chunk in self.chunks(list(items)):
            # gather keeps argument order, whatever order the fetches finish in
            chunk_results = await asyncio.gather(
                *(self._fetch_with_retry(item, fetch, fallback, label) for item in chunk)
            )
            results.extend(chunk_results)
        return results

    async def _fetch_with_retry(
        self,
        item: T,
        fetch: Callable[[T], Awaitable[R]],
        fallback: Callable[[T], R],
        label: Optional[Callable[[T], str]],
    ) -> R:
        attempts = self.retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return await fetch(item)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    f"Sub-fetch failed for {label(item) if label else item!r} "
                    f"(attempt {attempt}/{attempts}): {exc}"
                )

        report_logger.trend_day_degraded(
            label(item) if label else repr(item), attempts, str(last_error)
        )
        return fallback(item)
