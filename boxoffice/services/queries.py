"""
Read side of the scheduling and reservation store
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from boxoffice.core.database import store_errors
from boxoffice.core.exceptions import NotFoundError
from boxoffice.models.booking import Booking, BookedSeat
from boxoffice.models.movie import Movie
from boxoffice.models.screen import Screen, SeatLayout
from boxoffice.models.showtime import Showtime

SeatKey = Tuple[str, int]


async def get_screen(db: AsyncSession, screen_id: UUID) -> Screen:
    async with store_errors():
        screen = await db.get(Screen, screen_id)
    if not screen:
        raise NotFoundError("Screen", screen_id)
    return screen


async def get_movie(db: AsyncSession, movie_id: UUID) -> Movie:
    async with store_errors():
        movie = await db.get(Movie, movie_id)
    if not movie:
        raise NotFoundError("Movie", movie_id)
    return movie


async def get_showtime(db: AsyncSession, showtime_id: UUID) -> Showtime:
    """Showtime with its movie loaded"""
    stmt = (
        select(Showtime)
        .options(selectinload(Showtime.movie))
        .where(Showtime.id == showtime_id)
    )
    async with store_errors():
        result = await db.execute(stmt)
        showtime = result.scalar_one_or_none()
    if not showtime:
        raise NotFoundError("Showtime", showtime_id)
    return showtime


async def get_seat_layout(db: AsyncSession, screen_id: UUID) -> List[SeatLayout]:
    stmt = (
        select(SeatLayout)
        .where(SeatLayout.screen_id == screen_id)
        .order_by(SeatLayout.row_label, SeatLayout.seat_number)
    )
    async with store_errors():
        result = await db.execute(stmt)
        return list(result.scalars().all())


async def get_active_showtimes_for_screen(
    db: AsyncSession,
    screen_id: UUID,
    exclude_id: Optional[UUID] = None,
    starting_after: Optional[datetime] = None
) -> List[Showtime]:
    """Active showtimes on a screen, movie loaded, for conflict checks"""
    filters = [Showtime.screen_id == screen_id, Showtime.is_active.is_(True)]
    if exclude_id is not None:
        filters.append(Showtime.id != exclude_id)
    if starting_after is not None:
        filters.append(Showtime.start_time >= starting_after)

    stmt = (
        select(Showtime)
        .options(selectinload(Showtime.movie))
        .where(and_(*filters))
        .order_by(Showtime.start_time)
    )
    async with store_errors():
        result = await db.execute(stmt)
        return list(result.scalars().all())


async def get_active_showtimes_for_movie(
    db: AsyncSession,
    movie_id: UUID,
    starting_after: Optional[datetime] = None
) -> List[Showtime]:
    filters = [Showtime.movie_id == movie_id, Showtime.is_active.is_(True)]
    if starting_after is not None:
        filters.append(Showtime.start_time >= starting_after)

    stmt = (
        select(Showtime)
        .options(selectinload(Showtime.movie))
        .where(and_(*filters))
        .order_by(Showtime.start_time)
    )
    async with store_errors():
        result = await db.execute(stmt)
        return list(result.scalars().all())


async def get_booked_seats(db: AsyncSession, showtime_id: UUID) -> Set[SeatKey]:
    stmt = select(BookedSeat.row_label, BookedSeat.seat_number).where(
        BookedSeat.showtime_id == showtime_id
    )
    async with store_errors():
        result = await db.execute(stmt)
        return {(row, number) for row, number in result.all()}


async def get_booked_seats_for_showtimes(
    db: AsyncSession,
    showtime_ids: Iterable[UUID]
) -> Dict[UUID, Set[SeatKey]]:
    ids = list(showtime_ids)
    booked: Dict[UUID, Set[SeatKey]] = {showtime_id: set() for showtime_id in ids}
    if not ids:
        return booked

    stmt = select(BookedSeat.showtime_id, BookedSeat.row_label, BookedSeat.seat_number).where(
        BookedSeat.showtime_id.in_(ids)
    )
    async with store_errors():
        result = await db.execute(stmt)
        for showtime_id, row, number in result.all():
            booked.setdefault(showtime_id, set()).add((row, number))
    return booked


async def count_bookings(db: AsyncSession, showtime_id: UUID) -> int:
    stmt = select(func.count(Booking.id)).where(Booking.showtime_id == showtime_id)
    async with store_errors():
        result = await db.execute(stmt)
        return result.scalar_one()


async def get_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    stmt = (
        select(Booking)
        .options(selectinload(Booking.booked_seats))
        .where(Booking.id == booking_id)
    )
    async with store_errors():
        result = await db.execute(stmt)
        booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


async def booking_reference_exists(db: AsyncSession, reference: str) -> bool:
    stmt = select(func.count(Booking.id)).where(Booking.booking_reference == reference)
    async with store_errors():
        result = await db.execute(stmt)
        return result.scalar_one() > 0
