"""
Booking endpoints: commit a seat selection, read and cancel bookings
"""

from typing import Any
from uuid import UUID
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.database import get_session
from boxoffice.services import queries
from boxoffice.services.reservation_service import (
    CustomerInfo,
    ReservationCommitter,
    reservation_committer,
)
from boxoffice.schemas.booking import BookingCreate, BookingResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def get_committer() -> ReservationCommitter:
    return reservation_committer


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_session),
    committer: ReservationCommitter = Depends(get_committer)
) -> Any:
    """
    Book the selected seats in one all-or-nothing commit.

    A seat already sold to someone else fails the whole request with 409 and
    lists the unavailable seats; nothing is written.
    """
    customer = CustomerInfo(
        name=booking_data.customer.name,
        email=booking_data.customer.email,
        phone=booking_data.customer.phone,
    )
    return await committer.commit(
        db, booking_data.showtime_id, booking_data.seats, customer
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await queries.get_booking(db, booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_session),
    committer: ReservationCommitter = Depends(get_committer)
) -> Any:
    """
    Cancel a booking. The seats stay sold.
    """
    return await committer.cancel(db, booking_id)
