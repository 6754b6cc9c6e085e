"""Bounded-concurrency primitives for fan-out stages."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ConcurrencyLimiter:
    """In-process semaphore that remembers how many holders it has seen at once.

    ``peak`` is exposed so callers (and tests) can assert the cap held.
    """

    def __init__(self, limit: int, name: str = "limiter") -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._name = name
        self._semaphore = asyncio.Semaphore(limit)
        self._in_flight = 0
        self._peak = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        return self._peak

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._semaphore.acquire()
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._in_flight -= 1
        self._semaphore.release()


async def gather_bounded(
    factories: Iterable[Callable[[], Awaitable[T]]],
    limiter: ConcurrencyLimiter,
) -> list[T]:
    """Run coroutine factories with at most ``limiter.limit`` in flight.

    Results are returned in input order. Exceptions propagate; callers that
    want per-item isolation handle errors inside the factory.
    """

    async def _run(factory: Callable[[], Awaitable[T]]) -> T:
        async with limiter:
            return await factory()

    tasks = [_run(f) for f in factories]
    if not tasks:
        return []
    results = await asyncio.gather(*tasks)
    logger.debug("bounded_gather_done", limiter=limiter.name, count=len(tasks), peak=limiter.peak)
    return list(results)
