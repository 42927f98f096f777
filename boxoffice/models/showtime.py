"""
Showtime model
"""

from sqlalchemy import Column, Boolean, DateTime, ForeignKey, Numeric, Uuid, CheckConstraint
from sqlalchemy.orm import relationship

from boxoffice.models.base import BaseModel


class Showtime(BaseModel):
    """
    A scheduled screening of a movie on a screen.
    Overlap with other showtimes on the same screen is checked by the
    scheduling service only; the table carries no exclusion constraint.
    """
    __tablename__ = "showtimes"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_showtime_price_non_negative"),
    )

    tenant_id = Column(Uuid, nullable=False, index=True)
    movie_id = Column(Uuid, ForeignKey("movies.id"), nullable=False, index=True)
    screen_id = Column(Uuid, ForeignKey("screens.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    vip_price = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    movie = relationship("Movie", back_populates="showtimes")
    screen = relationship("Screen", back_populates="showtimes")
    # Only showtimes without bookings are ever deleted
    bookings = relationship("Booking", back_populates="showtime", passive_deletes=True)

    def __repr__(self):
        return f"<Showtime(id={self.id}, screen_id={self.screen_id}, start={self.start_time}, active={self.is_active})>"
