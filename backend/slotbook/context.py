from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .config import Settings
from .database import build_engine, build_sessionmaker
from .infrastructure.change_feed import ChangeFeed, build_change_feed
from .services.notifications import NotificationDispatcher


@dataclass
class AppContext:
    """Process resources, built once at startup and closed at shutdown."""

    settings: Settings
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    feed: ChangeFeed
    http_client: httpx.AsyncClient
    dispatcher: NotificationDispatcher

    @classmethod
    def create(cls, settings: Settings) -> "AppContext":
        engine = build_engine(settings)
        http_client = httpx.AsyncClient(timeout=settings.notify_timeout_seconds)
        return cls(
            settings=settings,
            engine=engine,
            sessionmaker=build_sessionmaker(engine),
            feed=build_change_feed(settings.redis_url),
            http_client=http_client,
            dispatcher=NotificationDispatcher.from_settings(settings, http_client),
        )

    async def close(self) -> None:
        await self.feed.close()
        await self.http_client.aclose()
        await self.engine.dispose()
