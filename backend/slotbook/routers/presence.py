import asyncio
import contextlib
import logging
from datetime import date, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket, WebSocketDisconnect, status

from ..context import AppContext
from ..deps import authenticate_token, get_change_feed, get_context, get_current_user_id, get_presence_repo
from ..domain.slots import SlotKey
from ..infrastructure.change_feed import ChangeFeed
from ..infrastructure.repositories import SqlAlchemyPresenceRepository
from ..schemas import PresenceBegin, PresenceRead, ViewersRead
from ..usecases.presence import SlotPresenceTracker, keep_alive, remove_presence, watch_viewers
from ..utils.time import parse_slot_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/presence", tags=["presence"])


def _parse_time_or_400(value: str) -> time:
    try:
        return parse_slot_time(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("", response_model=PresenceRead)
async def begin_viewing(
    payload: PresenceBegin,
    user_id: int = Depends(get_current_user_id),
    repo: SqlAlchemyPresenceRepository = Depends(get_presence_repo),
    feed: ChangeFeed = Depends(get_change_feed),
    context: AppContext = Depends(get_context),
) -> PresenceRead:
    """Start or refresh the caller's presence on a slot. Clients call this every refresh interval."""
    ttl = context.settings.presence_ttl_seconds
    tracker = SlotPresenceTracker(
        repo,
        user_id=user_id,
        key=SlotKey(payload.venue_id, payload.table_id, payload.slot_date, payload.slot_time),
        feed=feed,
        ttl=timedelta(seconds=ttl),
        presence_id=payload.presence_id,
    )
    presence_id = await tracker.begin_viewing()
    return PresenceRead(presence_id=presence_id, expires_in_seconds=ttl)


@router.delete("/{presence_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_viewing(
    presence_id: int,
    user_id: int = Depends(get_current_user_id),
    repo: SqlAlchemyPresenceRepository = Depends(get_presence_repo),
    feed: ChangeFeed = Depends(get_change_feed),
) -> Response:
    await remove_presence(repo, feed, presence_id=presence_id, user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("", response_model=ViewersRead)
async def list_viewers(
    venue_id: int = Query(...),
    table_id: int = Query(...),
    slot_date: date = Query(...),
    slot_time: str = Query(..., description="HH:MM"),
    user_id: int = Depends(get_current_user_id),
    repo: SqlAlchemyPresenceRepository = Depends(get_presence_repo),
) -> ViewersRead:
    key = SlotKey(venue_id, table_id, slot_date, _parse_time_or_400(slot_time))
    tracker = SlotPresenceTracker(repo, user_id=user_id, key=key)
    return ViewersRead.from_db(await tracker.list_viewers())


@router.websocket("/ws")
async def presence_stream(
    websocket: WebSocket,
    venue_id: int,
    table_id: int,
    slot_date: date,
    slot_time: str,
    token: str | None = None,
) -> None:
    """Hold presence for the lifetime of the socket and push the other viewers as they change."""
    context: AppContext = websocket.app.state.context
    async with context.sessionmaker() as session:
        try:
            user_id = await authenticate_token(token, session)
        except HTTPException as exc:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
            return
    try:
        parsed_time = parse_slot_time(slot_time)
    except ValueError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc))
        return

    settings = context.settings
    tracker = SlotPresenceTracker(
        SqlAlchemyPresenceRepository(context.sessionmaker),
        user_id=user_id,
        key=SlotKey(venue_id, table_id, slot_date, parsed_time),
        feed=context.feed,
        ttl=timedelta(seconds=settings.presence_ttl_seconds),
    )
    await websocket.accept()
    await tracker.begin_viewing()

    viewers = watch_viewers(tracker, context.feed, poll_interval=settings.presence_poll_seconds)

    async def _push() -> None:
        async for presences in viewers:
            payload = ViewersRead.from_db(presences).model_dump(mode="json")
            payload["presence_id"] = tracker.presence_id
            await websocket.send_json(payload)

    tasks = [
        asyncio.create_task(keep_alive(tracker, interval=settings.presence_refresh_seconds)),
        asyncio.create_task(_push()),
    ]
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("presence_stream_error", extra={"table_id": table_id, "user_id": user_id})
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        await viewers.aclose()
        await tracker.end_viewing()
