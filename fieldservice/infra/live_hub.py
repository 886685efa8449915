# fieldservice/infra/live_hub.py
from __future__ import annotations
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from fieldservice.infra.logging_config import get_logger

logger = get_logger(__name__)


class Subscription:
    """One subscriber's bounded buffer for a topic."""

    def __init__(self, topic: str, maxsize: int):
        self.topic = topic
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, payload: dict[str, Any]) -> None:
        """Enqueue without waiting; a full buffer loses its oldest entry."""
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(payload)

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self.queue.get()


class LiveHub:
    """
    In-process topic fan-out for real-time pushes (e.g. technician positions).

    ``publish`` never blocks: slow subscribers lose their oldest buffered
    messages instead of holding up the writer.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        for sub in list(self._subscribers.get(topic, ())):
            sub.offer(payload)
            if sub.dropped and sub.dropped % self.queue_size == 1:
                logger.warning(f"Live subscriber on {topic} is lagging: dropped={sub.dropped}")

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[Subscription]:
        sub = Subscription(topic, self.queue_size)
        self._subscribers[topic].add(sub)
        logger.debug(f"Live subscriber added: topic={topic}")
        try:
            yield sub
        finally:
            self._subscribers[topic].discard(sub)
            if not self._subscribers[topic]:
                del self._subscribers[topic]
            logger.debug(f"Live subscriber removed: topic={topic}")

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))
