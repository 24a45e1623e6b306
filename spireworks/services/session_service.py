import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spireworks.models.study_session import StudySession
from spireworks.schemas.session import SessionRecord

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


async def get_sessions(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
    mode: str | None = None,
) -> list[StudySession]:
    query = select(StudySession).where(StudySession.user_id == user_id)
    if mode:
        query = query.where(StudySession.mode == mode)
    query = query.order_by(StudySession.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_session(db: AsyncSession, user_id: uuid.UUID, data: dict) -> StudySession:
    session = StudySession(user_id=user_id, **data)
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session


async def get_session_stats(
    db: AsyncSession,
    user_id: uuid.UUID,
    period: str = "week",
) -> dict:
    """Study-mode totals for the period plus today's share and the streak.

    Only completed sessions count; autosave checkpoints are excluded.
    """
    now = datetime.now(timezone.utc)
    start = now - timedelta(days=PERIOD_DAYS.get(period, 7))

    result = await db.execute(
        select(StudySession).where(
            StudySession.user_id == user_id,
            StudySession.mode == "study",
            StudySession.completed == True,  # noqa: E712
            StudySession.created_at >= start,
        )
    )
    sessions = result.scalars().all()

    total_seconds = sum(s.duration_seconds for s in sessions)
    total_sessions = len(sessions)
    today = now.date()
    today_sessions = [s for s in sessions if _utc_date(s.created_at) == today]

    return {
        "period": period,
        "total_study_hours": round(total_seconds / 3600, 2),
        "total_sessions": total_sessions,
        "average_session_minutes": (
            round(total_seconds / total_sessions / 60, 1) if total_sessions else 0.0
        ),
        "sessions_today": len(today_sessions),
        "today_study_hours": round(
            sum(s.duration_seconds for s in today_sessions) / 3600, 2
        ),
        "current_streak": await get_streak(db, user_id),
    }


async def get_streak(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Consecutive days with completed study sessions ending today."""
    date_expr = func.date(StudySession.created_at)
    result = await db.execute(
        select(date_expr.label("session_date"))
        .where(
            StudySession.user_id == user_id,
            StudySession.mode == "study",
            StudySession.completed == True,  # noqa: E712
        )
        .group_by(date_expr)
        .order_by(date_expr.desc())
    )
    return calculate_streak(
        [row.session_date for row in result.all()],
        today=datetime.now(timezone.utc).date(),
    )


def calculate_streak(raw_dates: list, today: date | None = None) -> int:
    """Calculate consecutive days with sessions ending at today."""
    if not raw_dates:
        return 0

    # Parse string dates from SQLite or date objects from Postgres
    dates: list[date] = []
    for d in raw_dates:
        if isinstance(d, str):
            dates.append(date.fromisoformat(d))
        elif isinstance(d, datetime):
            dates.append(d.date())
        elif isinstance(d, date):
            dates.append(d)

    expected = today or date.today()
    streak = 0
    for d in sorted(set(dates), reverse=True):
        if d == expected:
            streak += 1
            expected -= timedelta(days=1)
        elif d < expected:
            break

    return streak


def _utc_date(value: datetime) -> date:
    # SQLite returns naive UTC datetimes, Postgres returns aware
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(timezone.utc).date()


# ---------------------------------------------------------------------------
# Persistence Clients
# ---------------------------------------------------------------------------


class SessionPersistenceClient(ABC):
    """Destination for timer session records (autosaves and completions)."""

    @abstractmethod
    async def create_session(self, record: SessionRecord) -> None:
        ...


class DatabaseSessionPersistence(SessionPersistenceClient):
    """Writes records straight to the database in their own transaction.

    ``on_completed`` runs inside the same transaction after a completed
    study record is added.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        user_id: uuid.UUID,
        on_completed: Callable[[AsyncSession, uuid.UUID], Awaitable] | None = None,
    ):
        self.session_factory = session_factory
        self.user_id = user_id
        self.on_completed = on_completed

    async def create_session(self, record: SessionRecord) -> None:
        async with self.session_factory() as db:
            await create_session(db, self.user_id, record.model_dump())
            if record.completed and record.mode == "study" and self.on_completed:
                await self.on_completed(db, self.user_id)
            await db.commit()


class HttpSessionPersistence(SessionPersistenceClient):
    """Posts records to ``POST /sessions`` on a remote service."""

    def __init__(self, base_url: str, http_client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client

    async def create_session(self, record: SessionRecord) -> None:
        http_client = self.http_client
        should_close = False
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=10.0)
            should_close = True

        try:
            response = await http_client.post(
                f"{self.base_url}/sessions", json=record.model_dump(mode="json")
            )
            response.raise_for_status()
        finally:
            if should_close:
                await http_client.aclose()
