from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..deps import (
    get_current_user_id,
    get_presence_repo,
    get_reservation_repo,
    get_venue_repo,
)
from ..domain.errors import NotFoundError, ValidationError
from ..infrastructure.repositories import (
    SqlAlchemyPresenceRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyVenueRepository,
)
from ..schemas import AvailabilityRead, ReservationRead, TableAvailabilityRead, TableRead, VenueRead
from ..usecases import reservations as reservation_usecase
from ..usecases import slots as slot_usecase

router = APIRouter(prefix="/venues", tags=["venues"], dependencies=[Depends(get_current_user_id)])


@router.get("", response_model=List[VenueRead])
async def list_venues(
    venue_repo: SqlAlchemyVenueRepository = Depends(get_venue_repo),
) -> list[VenueRead]:
    venues = await venue_repo.list_venues()
    return [VenueRead.from_db(venue=venue) for venue in venues]


@router.get("/{venue_id}", response_model=VenueRead)
async def get_venue(
    venue_id: int,
    venue_repo: SqlAlchemyVenueRepository = Depends(get_venue_repo),
) -> VenueRead:
    venue = await venue_repo.get_venue(venue_id)
    if venue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="venue not found")
    return VenueRead.from_db(venue=venue)


@router.get("/{venue_id}/tables", response_model=List[TableRead])
async def list_tables(
    venue_id: int,
    venue_repo: SqlAlchemyVenueRepository = Depends(get_venue_repo),
) -> list[TableRead]:
    tables = await venue_repo.list_active_tables(venue_id)
    return [TableRead.from_db(table=table) for table in tables]


@router.get("/{venue_id}/availability", response_model=AvailabilityRead)
async def get_availability(
    venue_id: int,
    on_date: date = Query(..., alias="date", description="Reservation date (YYYY-MM-DD)"),
    capacity: str = Query(default="all", description="all, 2, 4 or 6+"),
    user_id: int = Depends(get_current_user_id),
    venue_repo: SqlAlchemyVenueRepository = Depends(get_venue_repo),
    res_repo: SqlAlchemyReservationRepository = Depends(get_reservation_repo),
    presence_repo: SqlAlchemyPresenceRepository = Depends(get_presence_repo),
) -> AvailabilityRead:
    try:
        venue, grid = await slot_usecase.list_availability(
            venue_repo,
            res_repo,
            presence_repo,
            venue_id=venue_id,
            on_date=on_date,
            user_id=user_id,
            capacity=capacity,
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="venue not found")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return AvailabilityRead(
        venue=VenueRead.from_db(venue=venue),
        on_date=on_date,
        tables=[TableAvailabilityRead.from_row(row) for row in grid],
    )


@router.get("/{venue_id}/reservations", response_model=List[ReservationRead])
async def list_venue_reservations(
    venue_id: int,
    on_date: date = Query(..., alias="date"),
    res_repo: SqlAlchemyReservationRepository = Depends(get_reservation_repo),
) -> list[ReservationRead]:
    rows = await reservation_usecase.list_venue_reservations(res_repo, venue_id=venue_id, on_date=on_date)
    return [ReservationRead.from_db(reservation=row) for row in rows]
