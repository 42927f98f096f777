"""
Seat and showtime change feeds over Redis pub/sub

Every committed BookedSeat row is announced on the showtime's channel, and
every showtime insert, update or delete on its screen's channel. Delivery is
at-least-once with no ordering guarantee, so subscribers treat messages as
hints only.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
from uuid import UUID
import json
import logging

from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from boxoffice.core.exceptions import TransientNetworkError
from boxoffice.core.redis import RedisManager, redis_manager
from boxoffice.services.availability_tracker import AvailabilityTracker, SeatHint, SeatTakenNotice

logger = logging.getLogger(__name__)

SHOWTIME_EVENTS = ("insert", "update", "delete")


def channel_for(showtime_id: Any) -> str:
    return f"showtime:{showtime_id}:booked_seats"


def screen_channel_for(screen_id: Any) -> str:
    return f"screen:{screen_id}:showtimes"


@dataclass(frozen=True)
class ShowtimeChange:
    """A showtime on a screen was created, edited or removed"""
    showtime_id: UUID
    screen_id: UUID
    event: str
    start_time: Optional[datetime] = None
    is_active: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "table": "showtimes",
            "event": self.event,
            "showtime_id": str(self.showtime_id),
            "screen_id": str(self.screen_id),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "is_active": self.is_active,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ShowtimeChange":
        if payload["event"] not in SHOWTIME_EVENTS:
            raise ValueError(f"unknown showtime event {payload['event']!r}")
        start_time = payload.get("start_time")
        return cls(
            showtime_id=UUID(str(payload["showtime_id"])),
            screen_id=UUID(str(payload["screen_id"])),
            event=payload["event"],
            start_time=datetime.fromisoformat(start_time) if start_time else None,
            is_active=bool(payload.get("is_active", True)),
        )

    @classmethod
    def from_showtime(cls, showtime: Any, event: str, screen_id: Any = None) -> "ShowtimeChange":
        return cls(
            showtime_id=showtime.id,
            screen_id=screen_id or showtime.screen_id,
            event=event,
            start_time=showtime.start_time,
            is_active=bool(showtime.is_active) and event != "delete",
        )


def _decode(raw: Any, parse: Callable[[Dict[str, Any]], Any]) -> Any:
    try:
        payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return parse(payload)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Dropping malformed feed message: {e}")
        return None


def decode_hint(raw: Any) -> Optional[SeatHint]:
    return _decode(raw, SeatHint.from_payload)


def decode_showtime_change(raw: Any) -> Optional[ShowtimeChange]:
    return _decode(raw, ShowtimeChange.from_payload)


class SeatChangeFeed:
    """Publishes and consumes BookedSeat and Showtime change events"""

    def __init__(self, manager: Optional[RedisManager] = None):
        self.redis_manager = manager or redis_manager
        self.logger = logging.getLogger(__name__)

    async def publish_hint(self, hint: SeatHint) -> int:
        return await self.redis_manager.publish(channel_for(hint.showtime_id), hint.to_payload())

    async def publish_booking(self, booking: Any) -> int:
        """Announce every seat of a committed booking; returns subscriber deliveries."""
        delivered = 0
        for seat in booking.booked_seats:
            delivered += await self.publish_hint(SeatHint(
                showtime_id=booking.showtime_id,
                row_label=seat.row_label,
                seat_number=seat.seat_number,
                booking_id=booking.id,
            ))
        return delivered

    async def publish_showtime_change(self, change: ShowtimeChange) -> int:
        return await self.redis_manager.publish(screen_channel_for(change.screen_id), change.to_payload())

    async def _messages(self, channel: str) -> AsyncIterator[Any]:
        """
        Raw message payloads from one channel. A connection lost mid-stream
        surfaces as TransientNetworkError; closing the iterator unsubscribes.
        """
        pubsub = await self.redis_manager.subscribe(channel)
        try:
            try:
                async for message in pubsub.listen():
                    if message.get("type") == "message":
                        yield message.get("data")
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                raise TransientNetworkError("redis", f"Subscription to {channel} lost") from e
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                self.logger.warning(f"Could not unsubscribe from {channel}: {e}")

    async def hints(self, showtime_id: UUID) -> AsyncIterator[SeatHint]:
        """Yield seat hints for one showtime until the consumer stops iterating."""
        async for raw in self._messages(channel_for(showtime_id)):
            hint = decode_hint(raw)
            if hint is not None and hint.showtime_id == showtime_id:
                yield hint

    async def showtime_changes(self, screen_id: UUID) -> AsyncIterator[ShowtimeChange]:
        """Yield showtime changes for one screen until the consumer stops iterating."""
        async for raw in self._messages(screen_channel_for(screen_id)):
            change = decode_showtime_change(raw)
            if change is not None and change.screen_id == screen_id:
                yield change

    async def pump(
        self,
        tracker: AvailabilityTracker,
        on_notice: Optional[Callable[[List[SeatTakenNotice]], Awaitable[None]]] = None
    ):
        """Feed hints into a tracker until cancelled."""
        async for hint in self.hints(tracker.showtime_id):
            notices = tracker.apply(hint)
            if notices and on_notice is not None:
                await on_notice(notices)


seat_feed = SeatChangeFeed()
