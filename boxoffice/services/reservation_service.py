"""
Reservation committer: the only writer of BookedSeat rows
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Set
from uuid import UUID
import logging
import re
import secrets
import string

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import settings
from boxoffice.core.database import DatabaseManager, db_manager
from boxoffice.core.exceptions import (
    BookingReferenceCollisionError,
    SeatUnavailableError,
    TransientNetworkError,
    ValidationError,
)
from boxoffice.core.logging import ShowtimeLoggerAdapter
from boxoffice.core.metrics import MetricsCollector, metrics_collector
from boxoffice.models.booking import Booking, BookedSeat, BookingStatus
from boxoffice.models.screen import SeatType
from boxoffice.services import queries
from boxoffice.services.availability_tracker import SeatRequest
from boxoffice.services.seat_map import SeatKey, SeatMap, price_for

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ROW_PATTERN = re.compile(r"^[A-Z]{1,2}$")
REFERENCE_ATTEMPTS = 3


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: Optional[str] = None

    def validate(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Customer name is required", field="customer_name")
        if not self.email or not EMAIL_PATTERN.match(self.email):
            raise ValidationError("A valid customer email is required", field="customer_email")


def generate_booking_reference(length: Optional[int] = None) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length or settings.BOOKING_REFERENCE_LENGTH))


def normalize_seat_requests(seats: Iterable[Any], max_seats: int) -> List[SeatRequest]:
    requests: List[SeatRequest] = []
    seen: Set[SeatKey] = set()
    for seat in seats:
        if isinstance(seat, (tuple, list)):
            row, number, seat_type = (list(seat) + [None])[:3]
        else:
            row, number, seat_type = seat.row_label, seat.seat_number, getattr(seat, "seat_type", None)

        row = str(row).strip().upper()
        if not ROW_PATTERN.match(row):
            raise ValidationError(f"Invalid row label: {row!r}", field="row_label")
        try:
            number = int(number)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid seat number: {number!r}", field="seat_number") from e
        if number < 1:
            raise ValidationError(f"Invalid seat number: {number}", field="seat_number")
        if seat_type is not None:
            try:
                seat_type = SeatType(seat_type)
            except ValueError as e:
                raise ValidationError(f"Unknown seat type: {seat_type!r}", field="seat_type") from e

        if (row, number) in seen:
            raise ValidationError(f"Seat {row}{number} requested twice", field="seats")
        seen.add((row, number))
        requests.append(SeatRequest(row_label=row, seat_number=number, seat_type=seat_type))

    if not requests:
        raise ValidationError("At least one seat is required", field="seats")
    if len(requests) > max_seats:
        raise ValidationError(f"At most {max_seats} seats per booking", field="seats")
    return requests


class ReservationCommitter:
    """
    Turns a finalized seat selection into a Booking plus BookedSeat rows.

    The (showtime_id, row_label, seat_number) unique constraint is the
    correctness gate: a collision rolls the whole booking back. The read
    before the insert only produces a friendlier error sooner.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        feed: Any = None,
        metrics: Optional[MetricsCollector] = None,
        max_seats: Optional[int] = None
    ):
        self.db_manager = database or db_manager
        self.feed = feed
        self.metrics = metrics or metrics_collector
        self.max_seats = max_seats or settings.MAX_SEATS_PER_BOOKING
        self.logger = logging.getLogger(__name__)

    async def commit(
        self,
        db: AsyncSession,
        showtime_id: UUID,
        seats: Sequence[Any],
        customer: CustomerInfo
    ) -> Booking:
        requests = normalize_seat_requests(seats, self.max_seats)
        customer.validate()
        log = ShowtimeLoggerAdapter(self.logger, {"showtime_id": showtime_id})

        async with self.metrics.track_commit(len(requests)):
            booking = await self._insert_with_fresh_reference(db, showtime_id, requests, customer)

        log.info(
            f"Booking {booking.booking_reference} committed for "
            f"{', '.join(f'{r.row_label}{r.seat_number}' for r in requests)}",
            extra={"booking_reference": booking.booking_reference},
        )
        await self._publish(booking)
        return booking

    async def _insert_with_fresh_reference(
        self,
        db: AsyncSession,
        showtime_id: UUID,
        requests: List[SeatRequest],
        customer: CustomerInfo
    ) -> Booking:
        for attempt in range(1, REFERENCE_ATTEMPTS + 1):
            reference = generate_booking_reference()
            try:
                return await self._insert(db, showtime_id, requests, customer, reference)
            except BookingReferenceCollisionError:
                if attempt == REFERENCE_ATTEMPTS:
                    raise
                self.logger.warning(f"Booking reference {reference} already issued; retrying with a new one")

    async def _insert(
        self,
        db: AsyncSession,
        showtime_id: UUID,
        requests: List[SeatRequest],
        customer: CustomerInfo,
        reference: str
    ) -> Booking:
        requested = {r.key for r in requests}
        try:
            async with self.db_manager.transaction(db):
                showtime = await queries.get_showtime(db, showtime_id)
                if not showtime.is_active:
                    raise ValidationError("Showtime is not open for booking", field="showtime_id")

                screen = await queries.get_screen(db, showtime.screen_id)
                layout = await queries.get_seat_layout(db, showtime.screen_id)
                seat_map = SeatMap.from_layout(screen, layout, showtime_id=showtime_id)

                priced = []
                for request in requests:
                    position = seat_map.position(request.row_label, request.seat_number)
                    if position is None or not position.is_sellable:
                        raise ValidationError(
                            f"Seat {request.row_label}{request.seat_number} is not a sellable seat",
                            field="seats",
                        )
                    if request.seat_type is not None and request.seat_type != position.seat_type:
                        raise ValidationError(
                            f"Seat {request.row_label}{request.seat_number} is {position.seat_type.value}, "
                            f"not {request.seat_type.value}",
                            field="seat_type",
                        )
                    priced.append((position, price_for(position.seat_type, showtime.price, showtime.vip_price)))

                already_booked = requested & await queries.get_booked_seats(db, showtime_id)
                if already_booked:
                    raise SeatUnavailableError(list(already_booked))

                booking = Booking(
                    tenant_id=showtime.tenant_id,
                    showtime_id=showtime_id,
                    booking_reference=reference,
                    customer_name=customer.name.strip(),
                    customer_email=customer.email.strip(),
                    customer_phone=customer.phone,
                    total_amount=sum((price for _, price in priced), Decimal("0.00")),
                    status=BookingStatus.CONFIRMED,
                    booked_seats=[
                        BookedSeat(
                            showtime_id=showtime_id,
                            row_label=position.row_label,
                            seat_number=position.seat_number,
                            seat_type=position.seat_type,
                            price=price,
                        )
                        for position, price in priced
                    ],
                )
                db.add(booking)
                await db.flush()
        except IntegrityError as e:
            # Usually a lost race for a seat; otherwise check for a reused reference
            taken = requested & await queries.get_booked_seats(db, showtime_id)
            if not taken:
                if await queries.booking_reference_exists(db, reference):
                    raise BookingReferenceCollisionError(reference) from e
                raise
            self.logger.info(f"Commit for showtime {showtime_id} rejected at insert: {sorted(taken)}")
            raise SeatUnavailableError(list(taken)) from e

        return booking

    async def _publish(self, booking: Booking):
        if self.feed is None:
            return
        try:
            await self.feed.publish_booking(booking)
        except TransientNetworkError as e:
            # The booking is committed; viewers catch up on their next refresh
            self.logger.warning(f"Seat feed publish failed for {booking.booking_reference}: {e.message}")

    async def cancel(self, db: AsyncSession, booking_id: UUID) -> Booking:
        """
        Mark a booking cancelled. Its BookedSeat rows stay as the sale record.
        """
        async with self.db_manager.transaction(db):
            booking = await queries.get_booking(db, booking_id)
            if booking.status != BookingStatus.CANCELLED:
                booking.status = BookingStatus.CANCELLED
                await db.flush()
        self.logger.info(f"Booking {booking.booking_reference} cancelled")
        return booking


def build_committer() -> ReservationCommitter:
    from boxoffice.services.seat_feed import seat_feed
    return ReservationCommitter(feed=seat_feed)


reservation_committer = build_committer()
