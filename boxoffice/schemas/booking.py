"""
Booking schemas
"""

from pydantic import Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from boxoffice.schemas.base import BaseSchema, IDSchema, TimestampSchema
from boxoffice.models.booking import BookingStatus
from boxoffice.models.screen import SeatType
from boxoffice.config import settings


class SeatSelection(BaseSchema):
    """One requested seat"""
    row_label: str = Field(..., min_length=1, max_length=2)
    seat_number: int = Field(..., ge=1)
    seat_type: Optional[SeatType] = None


class CustomerDetails(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)


class BookingCreate(BaseSchema):
    """Booking creation schema"""
    showtime_id: UUID
    seats: List[SeatSelection] = Field(..., min_length=1, max_length=settings.MAX_SEATS_PER_BOOKING)
    customer: CustomerDetails

    @field_validator('seats')
    def validate_unique_seats(cls, v):
        keys = [(s.row_label.upper(), s.seat_number) for s in v]
        if len(keys) != len(set(keys)):
            raise ValueError('Duplicate seats not allowed')
        return v


class BookedSeatResponse(BaseSchema):
    row_label: str
    seat_number: int
    seat_type: SeatType
    price: Decimal


class BookingResponse(IDSchema, TimestampSchema):
    """Booking response schema"""
    booking_reference: str
    showtime_id: UUID
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    booked_seats: List[BookedSeatResponse]
    total_amount: Decimal
    status: BookingStatus
