"""
Showtime scheduling endpoints
"""

from typing import Any, List
from uuid import UUID
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.database import get_session
from boxoffice.services import queries
from boxoffice.services.schedule_generator import ScheduleService, schedule_service, utcnow
from boxoffice.schemas.showtime import (
    ScheduleRequest,
    ScheduleCommit,
    SchedulePreviewResponse,
    ShowtimeResponse,
    ShowtimeUpdate,
    ShowtimeUpdateResponse,
    ShowtimeRemoveResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_schedule_service() -> ScheduleService:
    return schedule_service


@router.post("/schedule/preview", response_model=SchedulePreviewResponse)
async def preview_schedule(
    request: ScheduleRequest,
    db: AsyncSession = Depends(get_session),
    service: ScheduleService = Depends(get_schedule_service)
) -> Any:
    """
    Generate showtimes for a date range and report conflicts without saving
    """
    proposal = await service.preview(
        db,
        movie_id=request.movie_id,
        screen_id=request.screen_id,
        start_date=request.start_date,
        end_date=request.end_date,
        time_of_day_slots=request.time_of_day_slots,
        price=request.price,
        vip_price=request.vip_price,
    )
    return {
        "drafts": [
            {"start_time": d.start_time, "price": d.price, "vip_price": d.vip_price}
            for d in proposal.drafts
        ],
        "conflicts": proposal.conflicts.to_list(),
        "internal_conflicts": proposal.internal_conflicts.to_list(),
        "discarded_slots": proposal.discarded_slots,
        "requires_confirmation": proposal.requires_confirmation,
    }


@router.post("/schedule", response_model=List[ShowtimeResponse], status_code=status.HTTP_201_CREATED)
async def create_schedule(
    request: ScheduleCommit,
    db: AsyncSession = Depends(get_session),
    service: ScheduleService = Depends(get_schedule_service)
) -> Any:
    """
    Create the whole schedule in one batch. Conflicts are rejected with 409
    unless force is set.
    """
    return await service.commit(
        db,
        movie_id=request.movie_id,
        screen_id=request.screen_id,
        start_date=request.start_date,
        end_date=request.end_date,
        time_of_day_slots=request.time_of_day_slots,
        price=request.price,
        vip_price=request.vip_price,
        force=request.force,
    )


@router.patch("/{showtime_id}", response_model=ShowtimeUpdateResponse)
async def update_showtime(
    showtime_id: UUID,
    update: ShowtimeUpdate,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_session),
    service: ScheduleService = Depends(get_schedule_service)
) -> Any:
    """
    Reschedule or re-price a single showtime
    """
    result = await service.reschedule(
        db, showtime_id, update.model_dump(exclude_unset=True), force=force
    )
    return {"showtime": result.showtime, "conflicts": result.conflicts.to_list()}


@router.delete("/{showtime_id}", response_model=ShowtimeRemoveResponse)
async def delete_showtime(
    showtime_id: UUID,
    db: AsyncSession = Depends(get_session),
    service: ScheduleService = Depends(get_schedule_service)
) -> Any:
    """
    Delete a showtime; one with bookings is deactivated instead
    """
    outcome = await service.remove(db, showtime_id)
    return {"showtime_id": showtime_id, "outcome": outcome}


@router.get("/screen/{screen_id}", response_model=List[ShowtimeResponse])
async def get_screen_showtimes(
    screen_id: UUID,
    upcoming_only: bool = True,
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Active showtimes on a screen
    """
    await queries.get_screen(db, screen_id)
    return await queries.get_active_showtimes_for_screen(
        db, screen_id, starting_after=utcnow() if upcoming_only else None
    )


@router.get("/movie/{movie_id}", response_model=List[ShowtimeResponse])
async def get_movie_showtimes(
    movie_id: UUID,
    upcoming_only: bool = True,
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Active showtimes of a movie, for the booking flow
    """
    await queries.get_movie(db, movie_id)
    return await queries.get_active_showtimes_for_movie(
        db, movie_id, starting_after=utcnow() if upcoming_only else None
    )
