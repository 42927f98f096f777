"""
Movie model
"""

from sqlalchemy import Column, String, Integer, Boolean, Enum, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
import enum

from boxoffice.models.base import BaseModel


class MovieStatus(str, enum.Enum):
    NOW_SHOWING = "now_showing"
    COMING_SOON = "coming_soon"


class Movie(BaseModel):
    """
    Movie model; only the fields scheduling needs
    """
    __tablename__ = "movies"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_movie_duration_positive"),
    )

    tenant_id = Column(Uuid, nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        Enum(MovieStatus),
        default=MovieStatus.NOW_SHOWING,
        nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    showtimes = relationship("Showtime", back_populates="movie")

    def __repr__(self):
        return f"<Movie(id={self.id}, title={self.title}, duration={self.duration_minutes})>"
