"""
Seat map and occupancy schemas
"""

from typing import List, Optional
from uuid import UUID
from pydantic import Field

from boxoffice.schemas.base import BaseSchema
from boxoffice.models.screen import SeatType
from boxoffice.services.seat_map import SeatState, OccupancyBadge


class SeatCell(BaseSchema):
    row_label: str
    seat_number: int
    seat_type: SeatType
    state: SeatState


class SeatRow(BaseSchema):
    row_label: str
    seats: List[SeatCell]


class SeatMapResponse(BaseSchema):
    showtime_id: Optional[UUID] = None
    capacity: int
    booked: int
    occupancy: float
    badge: Optional[OccupancyBadge] = None
    rows: List[SeatRow]


class OccupancyRequest(BaseSchema):
    showtime_ids: List[UUID] = Field(..., min_length=1, max_length=200)


class OccupancyResponse(BaseSchema):
    showtime_id: UUID
    capacity: int
    booked: int
    available: int
    occupancy: float
    badge: Optional[OccupancyBadge] = None
