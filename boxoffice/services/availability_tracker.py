"""
Per-viewer seat availability

The tracker caches which seats of one showtime are booked and owns nothing
else; the viewer's selection lives in an explicit ViewerSession. Change
notifications are hints for the display only. The unique constraint enforced
by the reservation committer is what actually prevents double sales.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Union
from uuid import UUID

from boxoffice.config import settings
from boxoffice.core.exceptions import CommitInProgressError, SeatUnavailableError, ValidationError
from boxoffice.services.seat_map import SeatKey, SeatMap, SeatPosition


@dataclass(frozen=True)
class SeatHint:
    """Best-effort "this seat was booked" notice from the change feed."""
    showtime_id: UUID
    row_label: str
    seat_number: int
    booking_id: Optional[UUID] = None

    @property
    def seats(self) -> FrozenSet[SeatKey]:
        return frozenset({(self.row_label, self.seat_number)})

    def to_payload(self) -> Dict[str, Any]:
        return {
            "table": "booked_seats",
            "event": "INSERT",
            "showtime_id": str(self.showtime_id),
            "row_label": self.row_label,
            "seat_number": self.seat_number,
            "booking_id": str(self.booking_id) if self.booking_id else None,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SeatHint":
        booking_id = payload.get("booking_id")
        return cls(
            showtime_id=UUID(str(payload["showtime_id"])),
            row_label=str(payload["row_label"]),
            seat_number=int(payload["seat_number"]),
            booking_id=UUID(str(booking_id)) if booking_id else None,
        )


@dataclass(frozen=True)
class AuthoritativeWrite:
    """The viewer's own commit succeeded for these seats."""
    showtime_id: UUID
    seats: FrozenSet[SeatKey]
    booking_id: Optional[UUID] = None


SeatNotification = Union[SeatHint, AuthoritativeWrite]


@dataclass(frozen=True)
class SeatTakenNotice:
    row_label: str
    seat_number: int

    @property
    def message(self) -> str:
        return f"Seat {self.row_label}{self.seat_number} was just booked by another customer"


@dataclass(frozen=True)
class SeatRequest:
    row_label: str
    seat_number: int
    seat_type: Any

    @property
    def key(self) -> SeatKey:
        return (self.row_label, self.seat_number)


class ViewerSession:
    """
    Selection state of one viewer for one showtime. Never persisted; it is
    discarded when the viewer leaves the seat map.
    """

    def __init__(self, showtime_id: UUID, max_seats: Optional[int] = None):
        self.showtime_id = showtime_id
        self.max_seats = max_seats or settings.MAX_SEATS_PER_BOOKING
        self._selected: Dict[SeatKey, SeatPosition] = {}
        self.commit_in_flight = False

    @property
    def selected(self) -> List[SeatKey]:
        return list(self._selected)

    def is_selected(self, row: str, seat_number: int) -> bool:
        return (row, seat_number) in self._selected

    def toggle(self, seat_map: SeatMap, row: str, seat_number: int) -> bool:
        """Select or deselect a seat. Returns True when the seat ends up selected."""
        key = (row, seat_number)
        if key in self._selected:
            del self._selected[key]
            return False
        if not seat_map.is_clickable(row, seat_number):
            raise ValidationError(f"Seat {row}{seat_number} cannot be selected", field="seat")
        if not seat_map.accepts_new_selection:
            raise ValidationError("This showtime is sold out", field="seat")
        if len(self._selected) >= self.max_seats:
            raise ValidationError(f"At most {self.max_seats} seats per booking", field="seat")
        self._selected[key] = seat_map.position(row, seat_number)
        return True

    def drop(self, keys: Iterable[SeatKey]) -> List[SeatKey]:
        dropped = []
        for key in keys:
            if self._selected.pop(key, None) is not None:
                dropped.append(key)
        return dropped

    def clear(self):
        self._selected.clear()

    def seat_requests(self) -> List[SeatRequest]:
        return [
            SeatRequest(row_label=p.row_label, seat_number=p.seat_number, seat_type=p.seat_type)
            for p in self._selected.values()
        ]


class AvailabilityTracker:
    """
    Booked-seat cache for one showtime, reconciled against one viewer session
    """

    def __init__(self, seat_map: SeatMap, session: ViewerSession):
        if seat_map.showtime_id is not None and seat_map.showtime_id != session.showtime_id:
            raise ValidationError("Seat map and session are for different showtimes")
        self.showtime_id = session.showtime_id
        self.session = session
        self._layout = seat_map
        self._booked: Set[SeatKey] = set(seat_map.booked)

    @property
    def booked(self) -> FrozenSet[SeatKey]:
        return frozenset(self._booked)

    @property
    def seat_map(self) -> SeatMap:
        return self._layout.with_booked(self._booked)

    def toggle(self, row: str, seat_number: int) -> bool:
        return self.session.toggle(self.seat_map, row, seat_number)

    def apply(self, notification: SeatNotification) -> List[SeatTakenNotice]:
        """
        Merge one notification. Re-applying a notification is a no-op.
        Returns a notice for every selected seat someone else just took.
        """
        if notification.showtime_id != self.showtime_id:
            return []

        self._booked.update(notification.seats)
        dropped = self.session.drop(sorted(notification.seats))

        if isinstance(notification, AuthoritativeWrite):
            return []
        return [SeatTakenNotice(row, number) for row, number in dropped]

    def apply_many(self, notifications: Iterable[SeatNotification]) -> List[SeatTakenNotice]:
        notices: List[SeatTakenNotice] = []
        for notification in notifications:
            notices.extend(self.apply(notification))
        return notices

    def refresh(self, booked_snapshot: Iterable[SeatKey]) -> List[SeatTakenNotice]:
        """Replace the cache with a fresh read from the store."""
        self._booked = {(row, int(number)) for row, number in booked_snapshot}
        dropped = self.session.drop([key for key in self.session.selected if key in self._booked])
        return [SeatTakenNotice(row, number) for row, number in dropped]

    def reconcile_rejection(self, error: SeatUnavailableError) -> List[SeatTakenNotice]:
        """Mark seats rejected at commit time as booked and drop them from the selection."""
        taken = {(row, int(number)) for row, number in error.seats}
        self._booked.update(taken)
        dropped = self.session.drop(sorted(taken))
        return [SeatTakenNotice(row, number) for row, number in dropped]

    async def checkout(self, committer: Any, db: Any, customer: Any):
        """
        Commit the current selection. Only one commit per session may be in
        flight; a rejected commit leaves the session ready to reselect.
        """
        if self.session.commit_in_flight:
            raise CommitInProgressError(self.showtime_id)
        seats = self.session.seat_requests()
        if not seats:
            raise ValidationError("Select at least one seat", field="seats")

        self.session.commit_in_flight = True
        try:
            booking = await committer.commit(db, self.showtime_id, seats, customer)
        except SeatUnavailableError as e:
            self.reconcile_rejection(e)
            raise
        finally:
            self.session.commit_in_flight = False

        self.apply(AuthoritativeWrite(
            showtime_id=self.showtime_id,
            seats=frozenset(seat.key for seat in seats),
            booking_id=booking.id,
        ))
        return booking
