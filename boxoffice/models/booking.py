"""
Booking and BookedSeat models
"""

from sqlalchemy import Column, String, ForeignKey, Enum, Numeric, Integer, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from boxoffice.models.base import BaseModel
from boxoffice.models.screen import SeatType


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELLED = "cancelled"


class Booking(BaseModel):
    """
    One customer's reservation of one or more seats for a showtime
    """
    __tablename__ = "bookings"

    tenant_id = Column(Uuid, nullable=False, index=True)
    showtime_id = Column(Uuid, ForeignKey("showtimes.id"), nullable=False, index=True)
    booking_reference = Column(String(20), unique=True, nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30))
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(BookingStatus),
        default=BookingStatus.CONFIRMED,
        nullable=False,
        index=True
    )

    # Relationships
    showtime = relationship("Showtime", back_populates="bookings")
    booked_seats = relationship("BookedSeat", back_populates="booking", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Booking(id={self.id}, reference={self.booking_reference}, status={self.status}, amount={self.total_amount})>"


class BookedSeat(BaseModel):
    """
    Permanent record that a seat is sold for a showtime. Never updated.
    """
    __tablename__ = "booked_seats"
    __table_args__ = (
        UniqueConstraint('showtime_id', 'row_label', 'seat_number', name='uq_showtime_seat'),
    )

    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=False, index=True)
    showtime_id = Column(Uuid, ForeignKey("showtimes.id"), nullable=False, index=True)
    row_label = Column(String(2), nullable=False)
    seat_number = Column(Integer, nullable=False)
    seat_type = Column(Enum(SeatType), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="booked_seats")

    @property
    def seat_key(self) -> tuple:
        return (self.row_label, self.seat_number)

    def __repr__(self):
        return f"<BookedSeat(showtime_id={self.showtime_id}, seat={self.row_label}{self.seat_number}, price={self.price})>"
