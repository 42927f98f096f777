"""
Custom application exceptions
"""

from typing import Optional, Dict, Any, List


class BoxOfficeException(Exception):
    """Base exception for the box-office core"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(BoxOfficeException):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404
        )


class ValidationError(BoxOfficeException):
    """Malformed input, rejected before any store access"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class NoValidSlotsError(BoxOfficeException):
    """Every generated screening time was already in the past"""

    def __init__(self, discarded: int = 0):
        super().__init__(
            message="No valid time slots: every requested screening time is in the past",
            code="NO_VALID_SLOTS",
            status_code=422,
            details={"discarded_slots": discarded}
        )


class ScheduleConflictError(BoxOfficeException):
    """Schedule commit attempted without override while conflicts exist"""

    def __init__(self, conflicts: List[Dict[str, Any]]):
        super().__init__(
            message=f"{len(conflicts)} scheduling conflict(s) found; confirm with force to create anyway",
            code="SCHEDULE_CONFLICT",
            status_code=409,
            details={"conflicts": conflicts}
        )
        self.conflicts = conflicts


class SeatUnavailableError(BoxOfficeException):
    """One or more requested seats were already booked at commit time"""

    def __init__(self, seats: List[tuple]):
        self.seats = sorted(seats)
        super().__init__(
            message="Selected seats are no longer available",
            code="SEATS_UNAVAILABLE",
            status_code=409,
            details={
                "unavailable_seats": [f"{row}{number}" for row, number in self.seats]
            }
        )


class BookingReferenceCollisionError(BoxOfficeException):
    """Every generated booking reference was already issued"""

    def __init__(self, reference: str):
        super().__init__(
            message="Could not allocate a booking reference; please retry",
            code="BOOKING_REFERENCE_COLLISION",
            status_code=409,
            details={"booking_reference": reference}
        )


class CommitInProgressError(BoxOfficeException):
    """A viewer attempted a second commit while one is in flight"""

    def __init__(self, showtime_id: Any):
        super().__init__(
            message="A booking for this showtime is already being processed",
            code="COMMIT_IN_PROGRESS",
            status_code=409,
            details={"showtime_id": str(showtime_id)}
        )


class TransientNetworkError(BoxOfficeException):
    """Store or feed call failed for infrastructure reasons; safe for the caller to retry"""

    def __init__(self, service: str, message: str = None):
        super().__init__(
            message=message or f"{service} is temporarily unavailable",
            code="TRANSIENT_NETWORK_ERROR",
            status_code=503,
            details={"service": service}
        )
