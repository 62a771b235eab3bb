"""
Broadcast event streams for the presentation layer.
"""

import asyncio
from typing import AsyncIterator, Generic, List, Optional, TypeVar


T = TypeVar("T")


class EventStream(Generic[T]):
    """
    Fan-out stream: every subscriber gets its own queue of published items.

    ``publish`` never blocks, so it is safe to call from the engine's
    synchronous listeners. ``close`` ends every subscription; subscribing
    after close yields nothing.
    """

    def __init__(self):
        self._subscribers: List[asyncio.Queue] = []
        self._closed = False

    def publish(self, item: T) -> None:
        if self._closed:
            return
        for queue in self._subscribers:
            queue.put_nowait(item)

    def subscribe(self) -> AsyncIterator[T]:
        """Return an async iterator over items published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue) -> AsyncIterator[T]:
        try:
            while True:
                item: Optional[T] = await queue.get()
                if item is None:  # close sentinel
                    return
                yield item
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
