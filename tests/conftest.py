"""
Test configuration and fixtures
Store tests run against in-memory SQLite through aiosqlite
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
import os

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool
from httpx import AsyncClient, ASGITransport

# Set test environment before anything reads settings
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["LOG_FORMAT"] = "text"

# Import all models BEFORE creating fixtures so create_all sees every table
from boxoffice.core.database import Base
from boxoffice.models.screen import Screen, SeatLayout, SeatType
from boxoffice.models.movie import Movie
from boxoffice.models.showtime import Showtime
from boxoffice.models.booking import Booking, BookedSeat, BookingStatus


def tomorrow_at(hour: int, minute: int = 0) -> datetime:
    day = datetime.now(timezone.utc).date() + timedelta(days=1)
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def test_db():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_db) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = async_sessionmaker(
        test_db,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def file_db(tmp_path):
    """
    File-backed SQLite behind a small queue pool. Every session gets its own
    connection, and a connection that is never returned shows up in checkedout().
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'boxoffice.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=2,
        max_overflow=0,
        pool_timeout=1,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def file_sessions(file_db):
    return async_sessionmaker(file_db, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def file_showtime(file_sessions):
    """A 2 x 3 screen and one showtime tomorrow evening in the file-backed store"""
    async with file_sessions() as session:
        tenant = uuid4()
        screen = Screen(tenant_id=tenant, name="Screen 1", rows=2, columns=3)
        movie = Movie(tenant_id=tenant, title="The Long Night", duration_minutes=100)
        session.add_all([screen, movie])
        await session.flush()
        return await create_showtime(session, movie, screen, tomorrow_at(20))


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest_asyncio.fixture
async def test_screen(db_session, tenant_id):
    """2 x 3 screen with no stored layout; every grid position is a regular seat"""
    screen = Screen(tenant_id=tenant_id, name="Screen 1", rows=2, columns=3)
    db_session.add(screen)
    await db_session.commit()
    return screen


@pytest_asyncio.fixture
async def vip_screen(db_session, tenant_id):
    """
    Row A: four regular seats. Row B: VIP seats 1-3, seat 4 is a walkway.
    """
    screen = Screen(tenant_id=tenant_id, name="Premium", rows=2, columns=4)
    db_session.add(screen)
    await db_session.flush()

    for n in range(1, 5):
        db_session.add(SeatLayout(screen_id=screen.id, row_label="A", seat_number=n, seat_type=SeatType.REGULAR))
    for n in range(1, 4):
        db_session.add(SeatLayout(screen_id=screen.id, row_label="B", seat_number=n, seat_type=SeatType.VIP))
    db_session.add(SeatLayout(
        screen_id=screen.id, row_label="B", seat_number=4,
        seat_type=SeatType.UNAVAILABLE, is_available=False
    ))
    await db_session.commit()
    return screen


@pytest_asyncio.fixture
async def test_movie(db_session, tenant_id):
    movie = Movie(tenant_id=tenant_id, title="The Long Night", duration_minutes=100)
    db_session.add(movie)
    await db_session.commit()
    return movie


@pytest_asyncio.fixture
async def other_movie(db_session, tenant_id):
    movie = Movie(tenant_id=tenant_id, title="Short Feature", duration_minutes=45)
    db_session.add(movie)
    await db_session.commit()
    return movie


async def create_showtime(db_session, movie, screen, start_time, price="10.00", vip_price="15.00", is_active=True):
    showtime = Showtime(
        tenant_id=screen.tenant_id,
        movie_id=movie.id,
        screen_id=screen.id,
        start_time=start_time,
        price=Decimal(price),
        vip_price=Decimal(vip_price) if vip_price is not None else None,
        is_active=is_active,
    )
    db_session.add(showtime)
    await db_session.commit()
    return showtime


@pytest_asyncio.fixture
async def test_showtime(db_session, test_movie, test_screen):
    return await create_showtime(db_session, test_movie, test_screen, tomorrow_at(20))


@pytest_asyncio.fixture
async def vip_showtime(db_session, test_movie, vip_screen):
    return await create_showtime(db_session, test_movie, vip_screen, tomorrow_at(18))


class FakeRedisManager:
    """Stands in for RedisManager in API tests"""

    def __init__(self, healthy: bool = True):
        self.healthy = healthy
        self.published = []

    async def ping(self) -> bool:
        from boxoffice.core.exceptions import TransientNetworkError
        if not self.healthy:
            raise TransientNetworkError("redis")
        return True

    async def publish(self, channel, message) -> int:
        self.published.append((channel, message))
        return 1


@pytest_asyncio.fixture
async def client(db_session):
    """Create test client with dependency overrides; no Redis needed"""
    from boxoffice.main import app
    from boxoffice.core.database import get_session
    from boxoffice.api.v1.endpoints.bookings import get_committer
    from boxoffice.api.v1.endpoints.health import get_redis_manager
    from boxoffice.api.v1.endpoints.showtimes import get_schedule_service
    from boxoffice.core.metrics import MetricsCollector
    from boxoffice.services.reservation_service import ReservationCommitter
    from boxoffice.services.schedule_generator import ScheduleService

    async def override_get_session():
        yield db_session

    committer = ReservationCommitter(feed=None, metrics=MetricsCollector())
    scheduler = ScheduleService(feed=None, metrics=MetricsCollector())

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_committer] = lambda: committer
    app.dependency_overrides[get_schedule_service] = lambda: scheduler
    app.dependency_overrides[get_redis_manager] = lambda: FakeRedisManager()

    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
