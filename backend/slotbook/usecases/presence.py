from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import StoreError
from ..domain.repositories import PresenceRepository
from ..domain.slots import SlotKey, presence_topic
from ..infrastructure.change_feed import ChangeFeed
from ..models import SlotPresence
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(seconds=120)

# Presence is advisory: these failures are logged and treated as "nothing known".
_STORE_FAILURES = (StoreError, SQLAlchemyError, OSError)


class SlotPresenceTracker:
    """
    Tracks one viewer's "booking form open" marker for one slot.

    The tracker keeps the id of its own presence row so refreshes and removal
    address it directly. Readers must always filter on ``expires_at > now``;
    a row that was never deleted is not evidence of a live viewer.
    """

    def __init__(
        self,
        repo: PresenceRepository,
        *,
        user_id: int,
        key: SlotKey,
        feed: Optional[ChangeFeed] = None,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now_naive,
        presence_id: Optional[int] = None,
    ) -> None:
        self.repo = repo
        self.user_id = user_id
        self.key = key
        self.feed = feed
        self.ttl = ttl
        self.clock = clock
        self.presence_id = presence_id

    async def begin_viewing(self) -> Optional[int]:
        now = self.clock()
        expires_at = now + self.ttl
        try:
            if self.presence_id is not None:
                touched = await self.repo.touch(
                    self.presence_id,
                    user_id=self.user_id,
                    viewed_at=now,
                    expires_at=expires_at,
                )
                if not touched:
                    self.presence_id = None
            if self.presence_id is None:
                self.presence_id = await self.repo.upsert(
                    user_id=self.user_id,
                    key=self.key,
                    viewed_at=now,
                    expires_at=expires_at,
                )
        except _STORE_FAILURES:
            logger.warning(
                "presence_write_failed",
                extra={"user_id": self.user_id, "table_id": self.key.table_id},
                exc_info=True,
            )
            return None
        await self._notify()
        return self.presence_id

    async def refresh(self) -> Optional[int]:
        return await self.begin_viewing()

    async def list_viewers(self) -> list[SlotPresence]:
        try:
            return await self.repo.list_active(self.key, now=self.clock(), exclude_user_id=self.user_id)
        except _STORE_FAILURES:
            logger.warning(
                "presence_read_failed",
                extra={"user_id": self.user_id, "table_id": self.key.table_id},
                exc_info=True,
            )
            return []

    async def end_viewing(self) -> None:
        presence_id, self.presence_id = self.presence_id, None
        if presence_id is None:
            return
        try:
            await self.repo.delete(presence_id, user_id=self.user_id)
        except _STORE_FAILURES:
            logger.warning(
                "presence_delete_failed",
                extra={"user_id": self.user_id, "presence_id": presence_id},
                exc_info=True,
            )
            return
        await self._notify()

    async def _notify(self) -> None:
        if self.feed is None:
            return
        try:
            await self.feed.publish(self.key.topic)
        except Exception:
            logger.warning("presence_publish_failed", extra={"topic": self.key.topic}, exc_info=True)


async def remove_presence(
    repo: PresenceRepository,
    feed: Optional[ChangeFeed],
    *,
    presence_id: int,
    user_id: int,
) -> bool:
    """Delete a presence row by id on behalf of its owner. Fails open like the tracker."""
    try:
        removed = await repo.delete(presence_id, user_id=user_id)
    except _STORE_FAILURES:
        logger.warning("presence_delete_failed", extra={"presence_id": presence_id}, exc_info=True)
        return False
    if removed is None:
        return False
    if feed is not None:
        topic = presence_topic(removed.table_id)
        try:
            await feed.publish(topic)
        except Exception:
            logger.warning("presence_publish_failed", extra={"topic": topic}, exc_info=True)
    return True


async def watch_viewers(
    tracker: SlotPresenceTracker,
    feed: ChangeFeed,
    *,
    poll_interval: float,
) -> AsyncIterator[list[SlotPresence]]:
    """
    Yield the current viewers now, then again on every poll tick or change event.

    Events arriving between two reads collapse into a single re-read. If the feed
    cannot be subscribed the watch keeps polling. Closing the generator drops the
    subscription.
    """
    wake = asyncio.Event()

    async def _listen(events: AsyncIterator[None]) -> None:
        async for _ in events:
            wake.set()

    async with contextlib.AsyncExitStack() as stack:
        listener: Optional[asyncio.Task[None]] = None
        try:
            events = await stack.enter_async_context(feed.subscribe(tracker.key.topic))
        except Exception:
            logger.warning("presence_subscribe_failed", extra={"topic": tracker.key.topic}, exc_info=True)
        else:
            listener = asyncio.create_task(_listen(events))
        try:
            while True:
                wake.clear()
                yield await tracker.list_viewers()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(wake.wait(), timeout=poll_interval)
        finally:
            if listener is not None:
                listener.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await listener


async def keep_alive(tracker: SlotPresenceTracker, *, interval: float) -> None:
    """Refresh the tracker's presence every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        await tracker.refresh()
