"""
Pydantic schemas for request and response validation
"""

from boxoffice.schemas.showtime import (
    ScheduleRequest,
    ScheduleCommit,
    SchedulePreviewResponse,
    ShowtimeResponse,
    ShowtimeUpdate
)
from boxoffice.schemas.booking import (
    BookingCreate,
    BookingResponse,
    SeatSelection
)
from boxoffice.schemas.seat import (
    SeatMapResponse,
    OccupancyRequest,
    OccupancyResponse
)
from boxoffice.schemas.response import (
    ErrorResponse,
    MessageResponse,
    HealthResponse
)

__all__ = [
    "ScheduleRequest",
    "ScheduleCommit",
    "SchedulePreviewResponse",
    "ShowtimeResponse",
    "ShowtimeUpdate",
    "BookingCreate",
    "BookingResponse",
    "SeatSelection",
    "SeatMapResponse",
    "OccupancyRequest",
    "OccupancyResponse",
    "ErrorResponse",
    "MessageResponse",
    "HealthResponse"
]
