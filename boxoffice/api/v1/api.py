"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from boxoffice.api.v1.endpoints import (
    showtimes,
    seats,
    bookings,
    health
)

api_router = APIRouter()

api_router.include_router(showtimes.router, prefix="/showtimes", tags=["showtimes"])
api_router.include_router(seats.router, prefix="/seats", tags=["seats"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
