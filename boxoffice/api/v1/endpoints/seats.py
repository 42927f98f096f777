"""
Seat map and occupancy endpoints
"""

from typing import Any, List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.database import get_session
from boxoffice.services import queries
from boxoffice.services.seat_map import SeatMap
from boxoffice.schemas.seat import SeatMapResponse, OccupancyRequest, OccupancyResponse

router = APIRouter()


async def load_seat_map(db: AsyncSession, showtime_id: UUID) -> SeatMap:
    showtime = await queries.get_showtime(db, showtime_id)
    screen = await queries.get_screen(db, showtime.screen_id)
    layout = await queries.get_seat_layout(db, showtime.screen_id)
    booked = await queries.get_booked_seats(db, showtime_id)
    return SeatMap.from_layout(screen, layout, booked, showtime_id=showtime_id)


@router.get("/showtimes/{showtime_id}", response_model=SeatMapResponse)
async def get_seat_map(
    showtime_id: UUID,
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Current seat map of a showtime. Selection is client-side and not included.
    """
    seat_map = await load_seat_map(db, showtime_id)
    return seat_map.to_dict()


@router.post("/occupancy", response_model=List[OccupancyResponse])
async def get_occupancy(
    request: OccupancyRequest,
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Occupancy and availability badge for a batch of showtimes
    """
    booked_by_showtime = await queries.get_booked_seats_for_showtimes(db, request.showtime_ids)

    layouts = {}
    results = []
    for showtime_id in request.showtime_ids:
        showtime = await queries.get_showtime(db, showtime_id)
        if showtime.screen_id not in layouts:
            screen = await queries.get_screen(db, showtime.screen_id)
            layouts[showtime.screen_id] = SeatMap.from_layout(
                screen, await queries.get_seat_layout(db, showtime.screen_id)
            )
        seat_map = layouts[showtime.screen_id].with_booked(booked_by_showtime.get(showtime_id, set()))
        badge = seat_map.badge
        results.append({
            "showtime_id": showtime_id,
            "capacity": seat_map.capacity,
            "booked": seat_map.booked_count,
            "available": len(seat_map.available_seats()),
            "occupancy": round(seat_map.occupancy, 4),
            "badge": badge,
        })
    return results
