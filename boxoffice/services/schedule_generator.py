"""
Bulk schedule generation

Expands (movie, screen, date range, daily time slots, pricing) into concrete
showtimes, drops slots that are not strictly in the future, and checks the
result against the screen's existing schedule before anything is written.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import settings
from boxoffice.core.database import DatabaseManager, db_manager, store_errors
from boxoffice.core.exceptions import (
    NoValidSlotsError,
    ScheduleConflictError,
    TransientNetworkError,
    ValidationError,
)
from boxoffice.core.metrics import MetricsCollector, metrics_collector
from boxoffice.models.showtime import Showtime
from boxoffice.services import queries
from boxoffice.services.conflict_detector import (
    CandidateScreening,
    ConflictWarning,
    ExistingScreening,
    as_utc,
    detect_conflicts,
    detect_internal_conflicts,
)
from boxoffice.services.seat_feed import SeatChangeFeed, ShowtimeChange, seat_feed

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cinema_timezone(name: Optional[str] = None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.CINEMA_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name or settings.CINEMA_TIMEZONE}", field="timezone") from e


def to_price(value: Any, field_name: str) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number", field=field_name) from e
    if not price.is_finite():
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if price < 0:
        raise ValidationError(f"{field_name} cannot be negative", field=field_name)
    return price.quantize(Decimal("0.01"))


@dataclass(frozen=True)
class ShowtimeDraft:
    movie_id: UUID
    screen_id: UUID
    start_time: datetime  # UTC
    price: Decimal
    vip_price: Optional[Decimal] = None

    def to_candidate(self, movie_title: str, duration_minutes: int) -> CandidateScreening:
        return CandidateScreening(
            start_time=self.start_time,
            duration_minutes=duration_minutes,
            movie_title=movie_title,
            movie_id=self.movie_id,
        )


def validate_schedule_params(
    start_date: date,
    end_date: date,
    time_of_day_slots: Sequence[time],
    price: Any,
    vip_price: Any = None
) -> tuple:
    if end_date < start_date:
        raise ValidationError("End date must be on or after start date", field="end_date")
    if not time_of_day_slots:
        raise ValidationError("At least one time slot is required", field="time_of_day_slots")
    base_price = to_price(price, "price")
    vip = to_price(vip_price, "vip_price") if vip_price is not None else None
    return base_price, vip


def expand_slots(
    start_date: date,
    end_date: date,
    time_of_day_slots: Iterable[time],
    tz: ZoneInfo
) -> List[datetime]:
    """Every day in [start_date, end_date] crossed with every slot, as UTC instants."""
    slots = sorted({slot.replace(second=0, microsecond=0, tzinfo=None) for slot in time_of_day_slots})
    instants = []
    day = start_date
    while day <= end_date:
        for slot in slots:
            instants.append(datetime.combine(day, slot, tzinfo=tz).astimezone(timezone.utc))
        day += timedelta(days=1)
    return instants


def generate(
    movie_id: UUID,
    screen_id: UUID,
    start_date: date,
    end_date: date,
    time_of_day_slots: Sequence[time],
    price: Any,
    vip_price: Any = None,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None
) -> List[ShowtimeDraft]:
    """
    Build the showtime drafts for a bulk schedule.

    Raises ValidationError for malformed input and NoValidSlotsError when
    every generated time is already in the past.
    """
    base_price, vip = validate_schedule_params(start_date, end_date, time_of_day_slots, price, vip_price)
    now = as_utc(now or utcnow())
    tz = tz or cinema_timezone()

    instants = expand_slots(start_date, end_date, time_of_day_slots, tz)
    upcoming = [instant for instant in instants if instant > now]
    if not upcoming:
        raise NoValidSlotsError(discarded=len(instants))

    return [
        ShowtimeDraft(
            movie_id=movie_id,
            screen_id=screen_id,
            start_time=instant,
            price=base_price,
            vip_price=vip,
        )
        for instant in upcoming
    ]


@dataclass
class ScheduleProposal:
    drafts: List[ShowtimeDraft]
    conflicts: ConflictWarning = field(default_factory=ConflictWarning)
    internal_conflicts: ConflictWarning = field(default_factory=ConflictWarning)
    discarded_slots: int = 0

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.conflicts) or bool(self.internal_conflicts)

    def all_conflicts(self) -> List[Dict[str, Any]]:
        return self.conflicts.to_list() + self.internal_conflicts.to_list()


@dataclass
class RescheduleResult:
    showtime: Showtime
    conflicts: ConflictWarning


RESCHEDULABLE_FIELDS = {"start_time", "movie_id", "screen_id", "price", "vip_price", "is_active"}


class ScheduleService:
    """
    Operator-facing scheduling: bulk generation, reschedule, deactivate, delete
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        metrics: Optional[MetricsCollector] = None,
        buffer_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        timezone_name: Optional[str] = None,
        feed: Optional[SeatChangeFeed] = None
    ):
        self.db_manager = database or db_manager
        self.metrics = metrics or metrics_collector
        self.buffer_minutes = settings.SCHEDULE_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        self.clock = clock
        self.timezone_name = timezone_name
        self.feed = feed
        self.logger = logging.getLogger(__name__)

    async def preview(
        self,
        db: AsyncSession,
        movie_id: UUID,
        screen_id: UUID,
        start_date: date,
        end_date: date,
        time_of_day_slots: Sequence[time],
        price: Any,
        vip_price: Any = None
    ) -> ScheduleProposal:
        """Generate drafts and report conflicts without writing anything."""
        tz = cinema_timezone(self.timezone_name)
        now = self.clock()
        # Input validation and past-slot filtering happen before any store call
        drafts = generate(
            movie_id, screen_id, start_date, end_date, time_of_day_slots,
            price, vip_price, now=now, tz=tz
        )
        total_slots = len(expand_slots(start_date, end_date, time_of_day_slots, tz))

        movie = await queries.get_movie(db, movie_id)
        screen = await queries.get_screen(db, screen_id)
        if movie.tenant_id != screen.tenant_id:
            raise ValidationError("Movie and screen belong to different cinemas", field="screen_id")
        if not movie.is_active:
            raise ValidationError("Movie is not active", field="movie_id")

        existing = await queries.get_active_showtimes_for_screen(db, screen_id)
        candidates = [d.to_candidate(movie.title, movie.duration_minutes) for d in drafts]

        return ScheduleProposal(
            drafts=drafts,
            conflicts=ConflictWarning(detect_conflicts(
                candidates,
                [ExistingScreening.from_showtime(s) for s in existing],
                self.buffer_minutes,
            )),
            internal_conflicts=ConflictWarning(detect_internal_conflicts(candidates, self.buffer_minutes)),
            discarded_slots=total_slots - len(drafts),
        )

    async def commit(
        self,
        db: AsyncSession,
        movie_id: UUID,
        screen_id: UUID,
        start_date: date,
        end_date: date,
        time_of_day_slots: Sequence[time],
        price: Any,
        vip_price: Any = None,
        force: bool = False
    ) -> List[Showtime]:
        """
        Insert the whole schedule as one batch.
        Raises ScheduleConflictError when conflicts exist and force is not set.
        """
        async with self.db_manager.transaction(db):
            proposal = await self.preview(
                db, movie_id, screen_id, start_date, end_date, time_of_day_slots, price, vip_price
            )
            if proposal.requires_confirmation and not force:
                self.logger.info(
                    f"Schedule for screen {screen_id} held back: {len(proposal.all_conflicts())} conflict(s)"
                )
                raise ScheduleConflictError(proposal.all_conflicts())

            screen = await queries.get_screen(db, screen_id)
            showtimes = [
                Showtime(
                    tenant_id=screen.tenant_id,
                    movie_id=draft.movie_id,
                    screen_id=draft.screen_id,
                    start_time=draft.start_time,
                    price=draft.price,
                    vip_price=draft.vip_price,
                    is_active=True,
                )
                for draft in proposal.drafts
            ]
            db.add_all(showtimes)
            await db.flush()

        conflict_count = len(proposal.all_conflicts())
        if conflict_count:
            self.logger.warning(
                f"Schedule for screen {screen_id} created over {conflict_count} conflict(s) by operator override"
            )
        self.logger.info(f"Created {len(showtimes)} showtimes on screen {screen_id}")
        await self.metrics.record_schedule_batch(len(showtimes), conflict_count, force)
        await self._announce(ShowtimeChange.from_showtime(s, "insert") for s in showtimes)
        return showtimes

    async def reschedule(
        self,
        db: AsyncSession,
        showtime_id: UUID,
        changes: Dict[str, Any],
        force: bool = False
    ) -> RescheduleResult:
        """Single-showtime edit: time, movie, screen, pricing or active flag."""
        changes = dict(changes)
        unknown = set(changes) - RESCHEDULABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot change: {', '.join(sorted(unknown))}")
        for required in ("start_time", "movie_id", "screen_id", "price", "is_active"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be empty", field=required)
        if "price" in changes:
            changes["price"] = to_price(changes["price"], "price")
        if changes.get("vip_price") is not None:
            changes["vip_price"] = to_price(changes["vip_price"], "vip_price")
        if changes.get("start_time") is not None:
            changes["start_time"] = as_utc(changes["start_time"])

        async with self.db_manager.transaction(db):
            showtime = await queries.get_showtime(db, showtime_id)
            movie = showtime.movie
            if "movie_id" in changes and changes["movie_id"] != showtime.movie_id:
                movie = await queries.get_movie(db, changes["movie_id"])
            screen_id = changes.get("screen_id", showtime.screen_id)
            screen = await queries.get_screen(db, screen_id)
            if movie.tenant_id != screen.tenant_id or screen.tenant_id != showtime.tenant_id:
                raise ValidationError("Movie and screen belong to different cinemas", field="screen_id")

            conflicts = ConflictWarning()
            if changes.get("is_active", showtime.is_active):
                candidate = CandidateScreening(
                    start_time=changes.get("start_time", showtime.start_time),
                    duration_minutes=movie.duration_minutes,
                    movie_title=movie.title,
                    movie_id=movie.id,
                    showtime_id=showtime.id,
                )
                existing = await queries.get_active_showtimes_for_screen(db, screen_id, exclude_id=showtime.id)
                conflicts = ConflictWarning(detect_conflicts(
                    [candidate],
                    [ExistingScreening.from_showtime(s) for s in existing],
                    self.buffer_minutes,
                ))
                if conflicts and not force:
                    raise ScheduleConflictError(conflicts.to_list())

            previous_screen_id = showtime.screen_id
            for key, value in changes.items():
                setattr(showtime, key, value)
            if movie is not showtime.movie:
                showtime.movie = movie
            await db.flush()

        self.logger.info(f"Showtime {showtime_id} updated: {sorted(changes)}")
        announcements = [ShowtimeChange.from_showtime(showtime, "update")]
        if previous_screen_id != showtime.screen_id:
            announcements.append(ShowtimeChange.from_showtime(showtime, "delete", screen_id=previous_screen_id))
        await self._announce(announcements)
        return RescheduleResult(showtime=showtime, conflicts=conflicts)

    async def deactivate(self, db: AsyncSession, showtime_id: UUID) -> Showtime:
        async with self.db_manager.transaction(db):
            showtime = await queries.get_showtime(db, showtime_id)
            showtime.is_active = False
            await db.flush()
        self.logger.info(f"Showtime {showtime_id} deactivated")
        await self._announce([ShowtimeChange.from_showtime(showtime, "update")])
        return showtime

    async def remove(self, db: AsyncSession, showtime_id: UUID) -> str:
        """
        Hard-delete a showtime with no bookings; one that has bookings is
        only deactivated. Returns "deleted" or "deactivated".
        """
        async with self.db_manager.transaction(db):
            showtime = await queries.get_showtime(db, showtime_id)
            if await queries.count_bookings(db, showtime_id):
                showtime.is_active = False
                outcome = "deactivated"
                change = ShowtimeChange.from_showtime(showtime, "update")
            else:
                change = ShowtimeChange.from_showtime(showtime, "delete")
                async with store_errors():
                    await db.delete(showtime)
                outcome = "deleted"
            await db.flush()
        self.logger.info(f"Showtime {showtime_id} {outcome}")
        await self._announce([change])
        return outcome

    async def _announce(self, changes: Iterable[ShowtimeChange]):
        """Best-effort showtime change events; the write has already committed."""
        if self.feed is None:
            return
        for change in changes:
            try:
                await self.feed.publish_showtime_change(change)
            except TransientNetworkError as e:
                self.logger.warning(f"Showtime feed publish failed for {change.showtime_id}: {e.message}")
                return


schedule_service = ScheduleService(feed=seat_feed)
