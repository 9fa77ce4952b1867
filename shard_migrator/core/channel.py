"""Bounded producer/consumer channel with an explicit end-of-stream sentinel."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedChannel(Generic[T]):
    """Fixed-capacity async queue terminated by a sentinel value.

    ``send`` suspends once ``capacity`` items are pending, so a producer can
    never run further ahead of its consumer than the channel capacity.
    ``close`` enqueues the sentinel exactly once; iteration stops when the
    sentinel is received.
    """

    def __init__(
        self,
        capacity: int,
        sentinel: T,
        is_sentinel: Callable[[T], bool] | None = None,
    ):
        if capacity < 1:
            raise ValueError(f"Channel capacity must be positive, got {capacity}")
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._sentinel = sentinel
        self._is_sentinel = is_sentinel or (lambda item: item is sentinel)
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("Cannot send on a closed channel")
        await self._queue.put(item)

    async def receive(self) -> T:
        return await self._queue.get()

    async def close(self) -> None:
        """Enqueue the end-of-stream sentinel. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(self._sentinel)

    def is_end(self, item: T) -> bool:
        return self._is_sentinel(item)

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            item = await self.receive()
            if self.is_end(item):
                return
            yield item
