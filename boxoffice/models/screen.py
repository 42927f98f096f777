"""
Screen and SeatLayout models
"""

from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, Enum, Uuid, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
import enum

from boxoffice.models.base import BaseModel


class SeatType(str, enum.Enum):
    REGULAR = "regular"
    VIP = "vip"
    UNAVAILABLE = "unavailable"


class Screen(BaseModel):
    """
    Physical auditorium with a fixed seat grid
    """
    __tablename__ = "screens"
    __table_args__ = (
        CheckConstraint("rows > 0", name="ck_screen_rows_positive"),
        CheckConstraint("columns > 0", name="ck_screen_columns_positive"),
    )

    tenant_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    rows = Column(Integer, nullable=False)
    columns = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    seat_layouts = relationship("SeatLayout", back_populates="screen", cascade="all, delete-orphan")
    showtimes = relationship("Showtime", back_populates="screen")

    def __repr__(self):
        return f"<Screen(id={self.id}, name={self.name}, rows={self.rows}, columns={self.columns})>"


class SeatLayout(BaseModel):
    """
    One seat position in a screen's static layout
    """
    __tablename__ = "seat_layouts"
    __table_args__ = (
        UniqueConstraint('screen_id', 'row_label', 'seat_number', name='uq_screen_seat'),
    )

    screen_id = Column(Uuid, ForeignKey("screens.id"), nullable=False, index=True)
    row_label = Column(String(2), nullable=False)
    seat_number = Column(Integer, nullable=False)
    seat_type = Column(
        Enum(SeatType),
        default=SeatType.REGULAR,
        nullable=False
    )
    is_available = Column(Boolean, default=True, nullable=False)  # False for walkways and gaps

    # Relationships
    screen = relationship("Screen", back_populates="seat_layouts")

    def __repr__(self):
        return f"<SeatLayout(screen_id={self.screen_id}, seat={self.row_label}{self.seat_number}, type={self.seat_type})>"
