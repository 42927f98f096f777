"""
Database models
"""

from boxoffice.models.screen import Screen, SeatLayout, SeatType
from boxoffice.models.movie import Movie, MovieStatus
from boxoffice.models.showtime import Showtime
from boxoffice.models.booking import Booking, BookedSeat, BookingStatus

__all__ = [
    "Screen",
    "SeatLayout",
    "SeatType",
    "Movie",
    "MovieStatus",
    "Showtime",
    "Booking",
    "BookedSeat",
    "BookingStatus"
]
