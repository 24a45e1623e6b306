import heapq
import itertools
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from spireworks.config import settings
from spireworks.database import get_db
from spireworks.main import app
from spireworks.models import Base
from spireworks.models.user import User
from spireworks.services.recommendation_service import RecommendationClient
from spireworks.services.registry import QuizRegistry, TimerRegistry
from spireworks.services.scheduler import Scheduler
from spireworks.services.session_service import SessionPersistenceClient

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory Redis mock for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._store[key] = str(value)
        if ex:
            self._ttls[key] = ex

    async def incr(self, key: str) -> int:
        val = int(self._store.get(key, "0")) + 1
        self._store[key] = str(val)
        return val

    async def expire(self, key: str, seconds: int) -> None:
        self._ttls[key] = seconds

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual clock: callbacks run only from ``advance``, coroutines only from ``drain``."""

    def __init__(self, start: datetime | None = None, honor_cancel: bool = True):
        self.start = start or datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
        # With honor_cancel off, cancelled callbacks still fire and must no-op
        self.honor_cancel = honor_cancel
        self.time = 0.0
        self._queue: list = []
        self._seq = itertools.count()
        self.spawned: list = []

    def call_later(self, delay, callback):
        handle = ManualHandle()
        heapq.heappush(self._queue, (self.time + delay, next(self._seq), handle, callback))
        return handle

    def spawn(self, coro) -> None:
        self.spawned.append(coro)

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.time)

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.time = due
            if not (handle.cancelled and self.honor_cancel):
                callback()
        self.time = target

    async def drain(self) -> None:
        while self.spawned:
            await self.spawned.pop(0)

    def discard(self) -> None:
        for coro in self.spawned:
            coro.close()
        self.spawned.clear()


class StubRecommender(RecommendationClient):
    """Returns (or raises) a preset value."""

    def __init__(self, value=25):
        self.value = value
        self.calls = []

    async def get_recommended_duration(self, study_data):
        self.calls.append(study_data)
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


class RecordingPersistence(SessionPersistenceClient):
    def __init__(self, fail: bool = False):
        self.records = []
        self.fail = fail

    async def create_session(self, record) -> None:
        if self.fail:
            raise ConnectionError("persistence unavailable")
        self.records.append(record)


@pytest.fixture
def scheduler():
    scheduler = ManualScheduler()
    yield scheduler
    scheduler.discard()


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid.uuid4(),
        external_id=settings.PLACEHOLDER_USER_ID,
        display_name="Test User",
        settings_json={},
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def client(
    session_factory, scheduler, test_user: User
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.redis = FakeRedis()
    app.state.timers = TimerRegistry(scheduler, session_factory)
    app.state.quizzes = QuizRegistry(
        scheduler, session_factory, question_seconds=20, advance_delay=0.5
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.timers.close()
    app.state.quizzes.close()
    app.dependency_overrides.clear()
