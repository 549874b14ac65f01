"""Process-local cache for the single global metrics object."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _consume_exception(task: asyncio.Task) -> None:
    # Failures are logged in _refresh; callers may have stopped waiting
    if not task.cancelled():
        task.exception()


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    value: T
    computed_at: float


class MetricsCache(Generic[T]):
    """TTL cache around one expensive async computation.

    Concurrent callers share a single in-flight recompute. The recompute is
    shielded from caller cancellation, so a caller that times out still
    leaves a fresh value for the next one. A failed recompute never evicts
    the previous good value.
    """

    def __init__(
        self,
        compute: Callable[[], Awaitable[T]],
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._compute = compute
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: CachedValue[T] | None = None
        self._in_flight: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    def _is_fresh(self, entry: CachedValue[T] | None) -> bool:
        return entry is not None and self._clock() - entry.computed_at < self.ttl_seconds

    async def get(self, force_refresh: bool = False) -> T:
        entry = self._entry
        if not force_refresh and self._is_fresh(entry):
            logger.debug("Metrics cache hit")
            return entry.value

        async with self._lock:
            if self._in_flight is None or self._in_flight.done():
                logger.info("Recomputing metrics", force_refresh=force_refresh)
                self._in_flight = asyncio.create_task(self._refresh())
                self._in_flight.add_done_callback(_consume_exception)
            task = self._in_flight

        return await asyncio.shield(task)

    async def _refresh(self) -> T:
        try:
            value = await self._compute()
        except Exception as e:
            logger.error(
                "Metrics recompute failed, keeping previous value",
                error=str(e),
                has_previous=self._entry is not None,
            )
            raise
        self._entry = CachedValue(value=value, computed_at=self._clock())
        return value

    def invalidate(self) -> None:
        self._entry = None
        logger.info("Metrics cache invalidated")

    def peek(self) -> tuple[T, float] | None:
        """Last good value and its age in seconds, whether fresh or not."""
        entry = self._entry
        if entry is None:
            return None
        return entry.value, self._clock() - entry.computed_at
