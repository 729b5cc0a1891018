from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .context import AppContext
from .infrastructure.change_feed import ChangeFeed
from .infrastructure.repositories import (
    SqlAlchemyMemberRepository,
    SqlAlchemyPresenceRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyVenueRepository,
)
from .models import User
from .services.notifications import NotificationDispatcher
from .utils.auth import InvalidAccessToken, TokenCodec, extract_bearer_token

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_session(context: AppContext = Depends(get_context)) -> AsyncIterator[AsyncSession]:
    async with context.sessionmaker() as session:
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=_BEARER_CHALLENGE)


async def authenticate_token(token: str | None, session: AsyncSession) -> int:
    """Resolve a bearer token to an existing user id, raising HTTPException otherwise."""
    if token is None:
        raise _unauthorized("Bearer token required")
    try:
        user_id = TokenCodec.from_settings(get_settings()).user_id(token)
    except InvalidAccessToken as exc:
        raise _unauthorized("invalid or expired token") from exc
    try:
        exists = await session.scalar(select(User.id).where(User.id == user_id))
    except ProgrammingError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="user store unavailable") from exc
    # Release the read transaction so handlers can open their own with session.begin().
    await session.rollback()
    if exists is None:
        raise _unauthorized("user not found")
    return user_id


async def get_current_user_id(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> int:
    return await authenticate_token(extract_bearer_token(authorization), session)


async def get_venue_repo(session: AsyncSession = Depends(get_session)) -> SqlAlchemyVenueRepository:
    return SqlAlchemyVenueRepository(session)


async def get_reservation_repo(
    session: AsyncSession = Depends(get_session),
) -> SqlAlchemyReservationRepository:
    return SqlAlchemyReservationRepository(session)


async def get_member_repo(session: AsyncSession = Depends(get_session)) -> SqlAlchemyMemberRepository:
    return SqlAlchemyMemberRepository(session)


def get_presence_repo(context: AppContext = Depends(get_context)) -> SqlAlchemyPresenceRepository:
    return SqlAlchemyPresenceRepository(context.sessionmaker)


def get_change_feed(context: AppContext = Depends(get_context)) -> ChangeFeed:
    return context.feed


def get_dispatcher(context: AppContext = Depends(get_context)) -> NotificationDispatcher:
    return context.dispatcher
