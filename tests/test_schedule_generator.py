"""
Tests for bulk schedule generation and the scheduling service
"""

import pytest
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from zoneinfo import ZoneInfo

from sqlalchemy import select, func

from boxoffice.core.exceptions import (
    NoValidSlotsError,
    NotFoundError,
    ScheduleConflictError,
    TransientNetworkError,
    ValidationError,
)
from boxoffice.core.metrics import MetricsCollector
from boxoffice.models.movie import Movie
from boxoffice.models.screen import Screen
from boxoffice.models.showtime import Showtime
from boxoffice.services import queries
from boxoffice.services.schedule_generator import (
    ScheduleService,
    cinema_timezone,
    expand_slots,
    generate,
    to_price,
)
from tests.conftest import create_showtime, tomorrow_at

NOW = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)
SLOTS = [time(10, 0), time(14, 0)]


def make_service(**kwargs):
    kwargs.setdefault("metrics", MetricsCollector())
    return ScheduleService(buffer_minutes=15, clock=lambda: NOW, timezone_name="UTC", **kwargs)


async def count_showtimes(db_session) -> int:
    result = await db_session.execute(select(func.count(Showtime.id)))
    return result.scalar_one()


@pytest.mark.unit
class TestGenerate:

    def test_every_day_crossed_with_every_slot(self):
        drafts = generate(
            uuid4(), uuid4(), date(2026, 11, 2), date(2026, 11, 4), SLOTS, "10",
            now=NOW, tz=ZoneInfo("UTC")
        )
        assert len(drafts) == 6
        assert drafts[0].start_time == datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        assert drafts[-1].start_time == datetime(2026, 11, 4, 14, 0, tzinfo=timezone.utc)
        assert all(d.price == Decimal("10.00") for d in drafts)
        assert all(d.vip_price is None for d in drafts)

    def test_past_slots_are_dropped(self):
        drafts = generate(
            uuid4(), uuid4(), date(2026, 11, 1), date(2026, 11, 2), SLOTS, 10,
            now=NOW, tz=ZoneInfo("UTC")
        )
        # 2026-11-01 10:00 is before NOW; 14:00 the same day is kept
        assert [d.start_time.hour for d in drafts] == [14, 10, 14]

    def test_slot_equal_to_now_is_dropped(self):
        drafts = generate(
            uuid4(), uuid4(), date(2026, 11, 1), date(2026, 11, 1), [time(12, 0), time(12, 1)], 10,
            now=NOW, tz=ZoneInfo("UTC")
        )
        assert [d.start_time for d in drafts] == [NOW + timedelta(minutes=1)]

    def test_all_past_raises_no_valid_slots(self):
        with pytest.raises(NoValidSlotsError) as exc_info:
            generate(
                uuid4(), uuid4(), date(2026, 10, 30), date(2026, 11, 1), [time(9, 0)], 10,
                now=NOW, tz=ZoneInfo("UTC")
            )
        assert exc_info.value.status_code == 422
        assert exc_info.value.details["discarded_slots"] == 3

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            generate(uuid4(), uuid4(), date(2026, 11, 5), date(2026, 11, 4), SLOTS, 10, now=NOW)
        assert exc_info.value.details["field"] == "end_date"

    def test_no_slots_rejected(self):
        with pytest.raises(ValidationError):
            generate(uuid4(), uuid4(), date(2026, 11, 2), date(2026, 11, 4), [], 10, now=NOW)

    @pytest.mark.parametrize("price", ["-1", "abc", "NaN"])
    def test_bad_price_rejected(self, price):
        with pytest.raises(ValidationError):
            generate(uuid4(), uuid4(), date(2026, 11, 2), date(2026, 11, 2), SLOTS, price, now=NOW)

    def test_negative_vip_price_rejected(self):
        with pytest.raises(ValidationError):
            generate(uuid4(), uuid4(), date(2026, 11, 2), date(2026, 11, 2), SLOTS, 10, vip_price=-5, now=NOW)

    def test_duplicate_slots_collapse(self):
        drafts = generate(
            uuid4(), uuid4(), date(2026, 11, 2), date(2026, 11, 2), [time(10), time(10), time(14)], 10,
            now=NOW, tz=ZoneInfo("UTC")
        )
        assert len(drafts) == 2

    def test_slots_are_local_to_the_cinema(self):
        instants = expand_slots(date(2026, 11, 2), date(2026, 11, 2), [time(20, 0)], ZoneInfo("America/New_York"))
        # EST is UTC-5 in November
        assert instants == [datetime(2026, 11, 3, 1, 0, tzinfo=timezone.utc)]

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            cinema_timezone("Mars/Olympus_Mons")

    def test_price_is_quantized(self):
        assert to_price("12.5", "price") == Decimal("12.50")


class TestSchedulePreview:

    @pytest.mark.asyncio
    async def test_preview_reports_conflicts_without_writing(self, db_session, test_movie, test_screen):
        blocker = await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)
        )
        service = make_service()

        proposal = await service.preview(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 1), date(2026, 11, 3), SLOTS, "12.00", "18.00"
        )

        assert len(proposal.drafts) == 5
        assert proposal.discarded_slots == 1
        assert len(proposal.conflicts) == 1
        [conflict] = proposal.conflicts.conflicts
        assert conflict.existing_showtime_id == blocker.id
        assert conflict.candidate.start_time == datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc)
        assert not proposal.internal_conflicts
        assert proposal.requires_confirmation
        assert await count_showtimes(db_session) == 1

    @pytest.mark.asyncio
    async def test_preview_flags_overlaps_inside_the_batch(self, db_session, test_movie, test_screen):
        proposal = await make_service().preview(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 2), date(2026, 11, 2), [time(10, 0), time(11, 0)], 10
        )
        assert not proposal.conflicts
        assert len(proposal.internal_conflicts) == 1
        assert proposal.requires_confirmation

    @pytest.mark.asyncio
    async def test_inactive_showtimes_do_not_block(self, db_session, test_movie, test_screen):
        await create_showtime(
            db_session, test_movie, test_screen,
            datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc), is_active=False
        )
        proposal = await make_service().preview(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 2), date(2026, 11, 2), SLOTS, 10
        )
        assert not proposal.requires_confirmation

    @pytest.mark.asyncio
    async def test_validation_happens_before_store_lookups(self, db_session):
        # Unknown ids would be a 404; malformed input must win
        with pytest.raises(ValidationError):
            await make_service().preview(
                db_session, uuid4(), uuid4(), date(2026, 11, 5), date(2026, 11, 1), SLOTS, 10
            )

    @pytest.mark.asyncio
    async def test_unknown_movie(self, db_session, test_screen):
        with pytest.raises(NotFoundError):
            await make_service().preview(
                db_session, uuid4(), test_screen.id, date(2026, 11, 2), date(2026, 11, 2), SLOTS, 10
            )

    @pytest.mark.asyncio
    async def test_movie_from_another_cinema_rejected(self, db_session, test_screen):
        foreign = Movie(tenant_id=uuid4(), title="Elsewhere", duration_minutes=90)
        db_session.add(foreign)
        await db_session.commit()

        with pytest.raises(ValidationError):
            await make_service().preview(
                db_session, foreign.id, test_screen.id, date(2026, 11, 2), date(2026, 11, 2), SLOTS, 10
            )


class TestScheduleCommit:

    @pytest.mark.asyncio
    async def test_clean_schedule_is_created(self, db_session, test_movie, test_screen):
        metrics = MetricsCollector()
        showtimes = await make_service(metrics=metrics).commit(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 2), date(2026, 11, 3), SLOTS, "11.00", "16.00"
        )

        assert len(showtimes) == 4
        assert all(s.tenant_id == test_screen.tenant_id for s in showtimes)
        assert all(s.vip_price == Decimal("16.00") for s in showtimes)
        assert await count_showtimes(db_session) == 4

        stats = await metrics.get_metrics()
        assert stats["scheduling"]["showtimes_created"] == 4

    @pytest.mark.asyncio
    async def test_conflicts_block_commit_without_force(self, db_session, test_movie, test_screen):
        await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)
        )

        with pytest.raises(ScheduleConflictError) as exc_info:
            await make_service().commit(
                db_session, test_movie.id, test_screen.id,
                date(2026, 11, 2), date(2026, 11, 3), SLOTS, 10
            )

        assert exc_info.value.status_code == 409
        assert len(exc_info.value.conflicts) == 1
        # Nothing from the batch was written
        assert await count_showtimes(db_session) == 1

    @pytest.mark.asyncio
    async def test_force_creates_despite_conflicts(self, db_session, test_movie, test_screen):
        await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)
        )
        metrics = MetricsCollector()

        showtimes = await make_service(metrics=metrics).commit(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 2), date(2026, 11, 3), SLOTS, 10, force=True
        )

        assert len(showtimes) == 4
        assert await count_showtimes(db_session) == 5
        stats = await metrics.get_metrics()
        assert stats["scheduling"]["conflict_overrides"] == 1

    @pytest.mark.asyncio
    async def test_all_past_writes_nothing(self, db_session, test_movie, test_screen):
        with pytest.raises(NoValidSlotsError):
            await make_service().commit(
                db_session, test_movie.id, test_screen.id,
                date(2026, 10, 1), date(2026, 10, 31), SLOTS, 10, force=True
            )
        assert await count_showtimes(db_session) == 0


class TestReschedule:

    @pytest.mark.asyncio
    async def test_small_move_does_not_conflict_with_itself(self, db_session, test_movie, test_screen):
        showtime = await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        )
        new_start = datetime(2026, 11, 2, 10, 30, tzinfo=timezone.utc)

        result = await make_service().reschedule(db_session, showtime.id, {"start_time": new_start})

        assert not result.conflicts
        refreshed = await queries.get_showtime(db_session, showtime.id)
        assert refreshed.start_time.replace(tzinfo=timezone.utc) == new_start

    @pytest.mark.asyncio
    async def test_move_onto_another_showtime(self, db_session, test_movie, other_movie, test_screen):
        await create_showtime(
            db_session, other_movie, test_screen, datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc)
        )
        showtime = await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 18, 0, tzinfo=timezone.utc)
        )
        showtime_id = showtime.id
        target = {"start_time": datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)}

        # The rollback expires loaded objects, so only the id is reused below
        with pytest.raises(ScheduleConflictError) as exc_info:
            await make_service().reschedule(db_session, showtime_id, target)
        assert exc_info.value.conflicts[0]["conflicting_movie_title"] == "Short Feature"

        result = await make_service().reschedule(db_session, showtime_id, target, force=True)
        assert len(result.conflicts) == 1
        assert result.showtime.start_time.replace(tzinfo=timezone.utc) == target["start_time"]

    @pytest.mark.asyncio
    async def test_longer_movie_uses_new_duration(self, db_session, test_movie, other_movie, test_screen):
        showtime = await create_showtime(
            db_session, other_movie, test_screen, datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        )
        await create_showtime(
            db_session, other_movie, test_screen, datetime(2026, 11, 2, 11, 0, tzinfo=timezone.utc)
        )

        # 45 + 15 fits before 11:00, 100 + 15 does not
        with pytest.raises(ScheduleConflictError):
            await make_service().reschedule(db_session, showtime.id, {"movie_id": test_movie.id})

    @pytest.mark.asyncio
    async def test_price_change_only(self, db_session, test_showtime):
        result = await make_service().reschedule(db_session, test_showtime.id, {"price": "9.5"})
        assert result.showtime.price == Decimal("9.50")

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, db_session, test_showtime):
        with pytest.raises(ValidationError):
            await make_service().reschedule(db_session, test_showtime.id, {"tenant_id": uuid4()})

    @pytest.mark.asyncio
    async def test_caller_changes_are_not_mutated(self, db_session, test_showtime):
        changes = {"price": "9.5"}
        await make_service().reschedule(db_session, test_showtime.id, changes)
        assert changes == {"price": "9.5"}


class TestRemove:

    @pytest.mark.asyncio
    async def test_deactivate(self, db_session, test_showtime):
        showtime = await make_service().deactivate(db_session, test_showtime.id)
        assert showtime.is_active is False
        assert await queries.get_active_showtimes_for_screen(db_session, test_showtime.screen_id) == []

    @pytest.mark.asyncio
    async def test_remove_without_bookings_deletes(self, db_session, test_showtime):
        assert await make_service().remove(db_session, test_showtime.id) == "deleted"
        with pytest.raises(NotFoundError):
            await queries.get_showtime(db_session, test_showtime.id)

    @pytest.mark.asyncio
    async def test_remove_with_bookings_deactivates(self, db_session, test_showtime):
        from boxoffice.services.reservation_service import CustomerInfo, ReservationCommitter

        committer = ReservationCommitter(feed=None, metrics=MetricsCollector())
        await committer.commit(
            db_session, test_showtime.id, [("A", 1)], CustomerInfo("Ada", "ada@example.com")
        )

        assert await make_service().remove(db_session, test_showtime.id) == "deactivated"
        showtime = await queries.get_showtime(db_session, test_showtime.id)
        assert showtime.is_active is False


class RecordingShowtimeFeed:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.changes = []

    async def publish_showtime_change(self, change):
        if self.fail:
            raise TransientNetworkError("redis")
        self.changes.append(change)
        return 1


class TestShowtimeChangeAnnouncements:

    @pytest.mark.asyncio
    async def test_new_schedule_is_announced_per_showtime(self, db_session, test_movie, test_screen):
        feed = RecordingShowtimeFeed()
        showtimes = await make_service(feed=feed).commit(
            db_session, test_movie.id, test_screen.id,
            date(2026, 11, 2), date(2026, 11, 2), SLOTS, "11.00"
        )

        assert [c.event for c in feed.changes] == ["insert", "insert"]
        assert {c.showtime_id for c in feed.changes} == {s.id for s in showtimes}
        assert all(c.screen_id == test_screen.id for c in feed.changes)

    @pytest.mark.asyncio
    async def test_blocked_schedule_announces_nothing(self, db_session, test_movie, test_screen):
        await create_showtime(
            db_session, test_movie, test_screen, datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)
        )
        feed = RecordingShowtimeFeed()

        with pytest.raises(ScheduleConflictError):
            await make_service(feed=feed).commit(
                db_session, test_movie.id, test_screen.id,
                date(2026, 11, 2), date(2026, 11, 2), SLOTS, 10
            )
        assert feed.changes == []

    @pytest.mark.asyncio
    async def test_move_to_another_screen_is_announced_on_both(self, db_session, test_showtime, tenant_id):
        old_screen_id = test_showtime.screen_id
        screen = Screen(tenant_id=tenant_id, name="Screen 2", rows=2, columns=3)
        db_session.add(screen)
        await db_session.commit()
        feed = RecordingShowtimeFeed()

        await make_service(feed=feed).reschedule(db_session, test_showtime.id, {"screen_id": screen.id})

        assert [(c.event, c.screen_id) for c in feed.changes] == [
            ("update", screen.id),
            ("delete", old_screen_id),
        ]

    @pytest.mark.asyncio
    async def test_deactivate_and_delete_are_announced(self, db_session, test_movie, test_screen, test_showtime):
        other = await create_showtime(db_session, test_movie, test_screen, tomorrow_at(23))
        feed = RecordingShowtimeFeed()
        service = make_service(feed=feed)

        await service.deactivate(db_session, test_showtime.id)
        await service.remove(db_session, other.id)

        assert [(c.showtime_id, c.event, c.is_active) for c in feed.changes] == [
            (test_showtime.id, "update", False),
            (other.id, "delete", False),
        ]

    @pytest.mark.asyncio
    async def test_feed_outage_does_not_undo_the_write(self, db_session, test_showtime):
        await make_service(feed=RecordingShowtimeFeed(fail=True)).deactivate(db_session, test_showtime.id)
        assert await queries.get_active_showtimes_for_screen(db_session, test_showtime.screen_id) == []
