"""
Screening intervals and schedule conflict detection

A screening occupies the half-open interval
[start_time, start_time + duration + buffer) on its screen. Two screenings
conflict when their intervals overlap; touching endpoints do not overlap.
Conflicts are advisory: they are reported to the operator, who may still
force the schedule through.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Any, Dict
from uuid import UUID

from boxoffice.config import settings
from boxoffice.core.exceptions import ValidationError


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_buffer(buffer_minutes: Optional[int]) -> int:
    if buffer_minutes is None:
        return settings.SCHEDULE_BUFFER_MINUTES
    if buffer_minutes < 0:
        raise ValidationError("Buffer minutes cannot be negative", field="buffer_minutes")
    return buffer_minutes


@dataclass(frozen=True)
class ScreeningInterval:
    start: datetime
    end: datetime

    @classmethod
    def for_screening(
        cls,
        start_time: datetime,
        duration_minutes: int,
        buffer_minutes: Optional[int] = None
    ) -> "ScreeningInterval":
        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError("Movie duration must be positive", field="duration_minutes")
        start = as_utc(start_time)
        return cls(
            start=start,
            end=start + timedelta(minutes=duration_minutes + resolve_buffer(buffer_minutes)),
        )

    def overlaps(self, other: "ScreeningInterval") -> bool:
        return self.start < other.end and self.end > other.start

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def overlaps(a: ScreeningInterval, b: ScreeningInterval) -> bool:
    return a.overlaps(b)


@dataclass(frozen=True)
class CandidateScreening:
    """A screening that is about to be created or moved."""
    start_time: datetime
    duration_minutes: int
    movie_title: str = ""
    movie_id: Optional[UUID] = None
    # Set when rescheduling, so the showtime is not compared against itself
    showtime_id: Optional[UUID] = None

    def interval(self, buffer_minutes: Optional[int] = None) -> ScreeningInterval:
        return ScreeningInterval.for_screening(self.start_time, self.duration_minutes, buffer_minutes)


@dataclass(frozen=True)
class ExistingScreening:
    """An active showtime already on the screen."""
    showtime_id: Optional[UUID]
    start_time: datetime
    duration_minutes: int
    movie_title: str = ""

    @classmethod
    def from_showtime(cls, showtime: Any) -> "ExistingScreening":
        # Requires showtime.movie to be loaded
        return cls(
            showtime_id=showtime.id,
            start_time=showtime.start_time,
            duration_minutes=showtime.movie.duration_minutes,
            movie_title=showtime.movie.title,
        )

    def interval(self, buffer_minutes: Optional[int] = None) -> ScreeningInterval:
        return ScreeningInterval.for_screening(self.start_time, self.duration_minutes, buffer_minutes)


@dataclass(frozen=True)
class ConflictInfo:
    candidate: CandidateScreening
    candidate_interval: ScreeningInterval
    existing_showtime_id: Optional[UUID]
    existing_interval: ScreeningInterval
    conflicting_movie_title: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_start": self.candidate_interval.start.isoformat(),
            "candidate_end": self.candidate_interval.end.isoformat(),
            "candidate_movie_title": self.candidate.movie_title,
            "existing_showtime_id": str(self.existing_showtime_id) if self.existing_showtime_id else None,
            "existing_start": self.existing_interval.start.isoformat(),
            "existing_end": self.existing_interval.end.isoformat(),
            "conflicting_movie_title": self.conflicting_movie_title,
        }


@dataclass
class ConflictWarning:
    """Informational result; creation needs an explicit override while non-empty."""
    conflicts: List[ConflictInfo] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.conflicts)

    def __len__(self) -> int:
        return len(self.conflicts)

    @property
    def message(self) -> str:
        if not self.conflicts:
            return "No scheduling conflicts"
        titles = sorted({c.conflicting_movie_title for c in self.conflicts})
        return f"{len(self.conflicts)} conflict(s) with: {', '.join(titles)}"

    def to_list(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.conflicts]


def detect_conflicts(
    candidates: Iterable[CandidateScreening],
    existing: Sequence[ExistingScreening],
    buffer_minutes: Optional[int] = None
) -> List[ConflictInfo]:
    """
    Test every candidate against every existing screening on the same screen.
    Returns one ConflictInfo per overlapping pair, in candidate order.
    """
    buffer_minutes = resolve_buffer(buffer_minutes)
    existing_intervals = [(e, e.interval(buffer_minutes)) for e in existing]

    conflicts: List[ConflictInfo] = []
    for candidate in candidates:
        candidate_interval = candidate.interval(buffer_minutes)
        for screening, interval in existing_intervals:
            if candidate.showtime_id is not None and screening.showtime_id == candidate.showtime_id:
                continue
            if candidate_interval.overlaps(interval):
                conflicts.append(ConflictInfo(
                    candidate=candidate,
                    candidate_interval=candidate_interval,
                    existing_showtime_id=screening.showtime_id,
                    existing_interval=interval,
                    conflicting_movie_title=screening.movie_title,
                ))
    return conflicts


def detect_internal_conflicts(
    candidates: Sequence[CandidateScreening],
    buffer_minutes: Optional[int] = None
) -> List[ConflictInfo]:
    """Overlaps among the candidates of a single batch, each pair reported once."""
    buffer_minutes = resolve_buffer(buffer_minutes)
    ordered = sorted(candidates, key=lambda c: as_utc(c.start_time))
    intervals = [c.interval(buffer_minutes) for c in ordered]

    conflicts: List[ConflictInfo] = []
    for i, first in enumerate(ordered):
        for j in range(i + 1, len(ordered)):
            # Sorted by start: once a later start is past our end nothing further overlaps
            if intervals[j].start >= intervals[i].end:
                break
            conflicts.append(ConflictInfo(
                candidate=ordered[j],
                candidate_interval=intervals[j],
                existing_showtime_id=None,
                existing_interval=intervals[i],
                conflicting_movie_title=first.movie_title,
            ))
    return conflicts
