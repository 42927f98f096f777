"""
Seat map for one showtime: the screen's static layout combined with the
showtime's booked seats
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple
from uuid import UUID

from boxoffice.config import settings
from boxoffice.models.screen import SeatType

SeatKey = Tuple[str, int]


class SeatState(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    SELECTED = "selected"
    UNAVAILABLE = "unavailable"


class OccupancyBadge(str, Enum):
    SOLD_OUT = "sold_out"
    ALMOST_FULL = "almost_full"
    FILLING_FAST = "filling_fast"


@dataclass(frozen=True)
class OccupancyThresholds:
    sold_out: float = 0.95
    almost_full: float = 0.80
    filling_fast: float = 0.50

    @classmethod
    def from_settings(cls) -> "OccupancyThresholds":
        return cls(
            sold_out=settings.OCCUPANCY_SOLD_OUT,
            almost_full=settings.OCCUPANCY_ALMOST_FULL,
            filling_fast=settings.OCCUPANCY_FILLING_FAST,
        )


def occupancy_badge(
    booked: int,
    capacity: int,
    thresholds: Optional[OccupancyThresholds] = None
) -> Optional[OccupancyBadge]:
    if capacity <= 0:
        return None
    thresholds = thresholds or OccupancyThresholds.from_settings()
    # Integer comparison avoids 95/100 landing a hair under 0.95
    if booked * 100 >= round(thresholds.sold_out * 100) * capacity:
        return OccupancyBadge.SOLD_OUT
    if booked * 100 >= round(thresholds.almost_full * 100) * capacity:
        return OccupancyBadge.ALMOST_FULL
    if booked * 100 >= round(thresholds.filling_fast * 100) * capacity:
        return OccupancyBadge.FILLING_FAST
    return None


def price_for(seat_type: SeatType, price: Decimal, vip_price: Optional[Decimal]) -> Decimal:
    """VIP seats use the VIP price, or the base price when none is set."""
    if seat_type == SeatType.VIP:
        return vip_price if vip_price is not None else price
    if seat_type == SeatType.REGULAR:
        return price
    if seat_type == SeatType.UNAVAILABLE:
        raise ValueError("Unavailable seats have no price")
    raise ValueError(f"Unknown seat type: {seat_type!r}")


def row_label(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA"""
    label = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


@dataclass(frozen=True)
class SeatPosition:
    row_label: str
    seat_number: int
    seat_type: SeatType = SeatType.REGULAR
    is_available: bool = True

    @property
    def key(self) -> SeatKey:
        return (self.row_label, self.seat_number)

    @property
    def is_sellable(self) -> bool:
        return self.is_available and self.seat_type != SeatType.UNAVAILABLE

    @classmethod
    def from_layout(cls, entry: Any) -> "SeatPosition":
        return cls(
            row_label=entry.row_label,
            seat_number=entry.seat_number,
            seat_type=SeatType(entry.seat_type),
            is_available=bool(entry.is_available),
        )


def default_layout(rows: int, columns: int) -> List[SeatPosition]:
    return [
        SeatPosition(row_label=row_label(r), seat_number=n)
        for r in range(rows)
        for n in range(1, columns + 1)
    ]


class SeatMap:
    """
    Immutable view of one showtime's seats. Selection is passed in by the
    caller and never stored here.
    """

    def __init__(
        self,
        positions: Iterable[SeatPosition],
        booked: Iterable[SeatKey] = (),
        showtime_id: Optional[UUID] = None,
        thresholds: Optional[OccupancyThresholds] = None
    ):
        self.showtime_id = showtime_id
        self._positions: Dict[SeatKey, SeatPosition] = {p.key: p for p in positions}
        self.booked: FrozenSet[SeatKey] = frozenset((row, int(number)) for row, number in booked)
        self.thresholds = thresholds or OccupancyThresholds.from_settings()

    @classmethod
    def from_layout(
        cls,
        screen: Any,
        layout_entries: Iterable[Any],
        booked: Iterable[SeatKey] = (),
        showtime_id: Optional[UUID] = None,
        thresholds: Optional[OccupancyThresholds] = None
    ) -> "SeatMap":
        positions = [SeatPosition.from_layout(entry) for entry in layout_entries]
        if not positions:
            positions = default_layout(screen.rows, screen.columns)
        return cls(positions, booked, showtime_id=showtime_id, thresholds=thresholds)

    def with_booked(self, booked: Iterable[SeatKey]) -> "SeatMap":
        return SeatMap(self._positions.values(), booked, self.showtime_id, self.thresholds)

    def position(self, row: str, seat_number: int) -> Optional[SeatPosition]:
        return self._positions.get((row, seat_number))

    @property
    def positions(self) -> List[SeatPosition]:
        return sorted(self._positions.values(), key=lambda p: (len(p.row_label), p.row_label, p.seat_number))

    @property
    def capacity(self) -> int:
        return sum(1 for p in self._positions.values() if p.is_sellable)

    @property
    def booked_count(self) -> int:
        return len(self.booked)

    @property
    def occupancy(self) -> float:
        if self.capacity == 0:
            return 0.0
        return self.booked_count / self.capacity

    @property
    def badge(self) -> Optional[OccupancyBadge]:
        return occupancy_badge(self.booked_count, self.capacity, self.thresholds)

    @property
    def accepts_new_selection(self) -> bool:
        return self.badge != OccupancyBadge.SOLD_OUT

    def is_booked(self, row: str, seat_number: int) -> bool:
        return (row, seat_number) in self.booked

    def is_clickable(self, row: str, seat_number: int) -> bool:
        position = self.position(row, seat_number)
        if position is None or not position.is_sellable:
            return False
        return not self.is_booked(row, seat_number)

    def seat_state(self, row: str, seat_number: int, selected: Iterable[SeatKey] = ()) -> SeatState:
        position = self.position(row, seat_number)
        if position is None or not position.is_sellable:
            return SeatState.UNAVAILABLE
        if self.is_booked(row, seat_number):
            return SeatState.BOOKED
        if (row, seat_number) in set(selected):
            return SeatState.SELECTED
        return SeatState.AVAILABLE

    def available_seats(self) -> List[SeatPosition]:
        return [p for p in self.positions if p.is_sellable and p.key not in self.booked]

    def to_dict(self, selected: Iterable[SeatKey] = ()) -> Dict[str, Any]:
        selected = set(selected)
        rows: Dict[str, List[Dict[str, Any]]] = {}
        for p in self.positions:
            rows.setdefault(p.row_label, []).append({
                "row_label": p.row_label,
                "seat_number": p.seat_number,
                "seat_type": p.seat_type.value,
                "state": self.seat_state(p.row_label, p.seat_number, selected).value,
            })
        badge = self.badge
        return {
            "showtime_id": str(self.showtime_id) if self.showtime_id else None,
            "capacity": self.capacity,
            "booked": self.booked_count,
            "occupancy": round(self.occupancy, 4),
            "badge": badge.value if badge else None,
            "rows": [{"row_label": label, "seats": seats} for label, seats in rows.items()],
        }
