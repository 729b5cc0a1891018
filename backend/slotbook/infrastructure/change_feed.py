from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Protocol

from redis import asyncio as redis_asyncio

logger = logging.getLogger(__name__)


class ChangeFeed(Protocol):
    """Topic-keyed wake-up signals. Subscribers re-read state; no payloads are carried."""

    async def publish(self, topic: str) -> None: ...

    def subscribe(self, topic: str) -> AsyncContextManager[AsyncIterator[None]]: ...

    async def close(self) -> None: ...


class InMemoryChangeFeed(ChangeFeed):
    """Single-process feed backed by one bounded queue per subscriber."""

    def __init__(self, max_pending: int = 1) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[None]]] = defaultdict(set)
        self._max_pending = max_pending

    async def publish(self, topic: str) -> None:
        for queue in list(self._subscribers.get(topic, ())):
            # A full queue already holds a pending wake-up.
            if not queue.full():
                queue.put_nowait(None)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[AsyncIterator[None]]:
        queue: asyncio.Queue[None] = asyncio.Queue(maxsize=self._max_pending)
        self._subscribers[topic].add(queue)

        async def events() -> AsyncIterator[None]:
            while True:
                await queue.get()
                yield None

        try:
            yield events()
        finally:
            subscribers = self._subscribers.get(topic)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def close(self) -> None:
        self._subscribers.clear()


class RedisChangeFeed(ChangeFeed):
    """Cross-process feed over Redis pub/sub channels named after the topic."""

    def __init__(self, redis_url: str, *, prefix: str = "changes:") -> None:
        self._client = redis_asyncio.from_url(redis_url)
        self._prefix = prefix

    def _channel(self, topic: str) -> str:
        return f"{self._prefix}{topic}"

    async def publish(self, topic: str) -> None:
        await self._client.publish(self._channel(topic), "1")

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[AsyncIterator[None]]:
        pubsub = self._client.pubsub()
        channel = self._channel(topic)
        await pubsub.subscribe(channel)
        logger.debug("change_feed_subscribed", extra={"channel": channel})

        async def events() -> AsyncIterator[None]:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                yield None

        try:
            yield events()
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def close(self) -> None:
        await self._client.aclose()


def build_change_feed(redis_url: str | None) -> ChangeFeed:
    if not redis_url:
        logger.warning("change_feed_in_memory", extra={"reason": "REDIS_URL missing"})
        return InMemoryChangeFeed()
    return RedisChangeFeed(redis_url)
