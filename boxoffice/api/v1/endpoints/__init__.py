"""
API endpoints module
"""

from . import showtimes, seats, bookings, health, websocket

__all__ = [
    "showtimes",
    "seats",
    "bookings",
    "health",
    "websocket"
]
