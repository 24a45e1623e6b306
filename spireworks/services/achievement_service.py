"""Study achievements derived from completed study sessions.

Progress is recomputed from ``study_sessions`` on every read or check.
Once an achievement unlocks it stays unlocked, even if a later streak
breaks and its progress drops.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spireworks.models.achievement import Achievement
from spireworks.models.study_session import StudySession
from spireworks.services.session_service import calculate_streak

logger = logging.getLogger(__name__)

EARLY_BIRD_BEFORE_HOUR = 8
NIGHT_OWL_FROM_HOUR = 22


@dataclass(frozen=True)
class AchievementDefinition:
    achievement_type: str
    title: str
    description: str
    icon: str
    target: int


ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "early_bird", "Early Bird", "Study 5 days in a row before 8 AM", "🌅", 5
    ),
    AchievementDefinition(
        "study_marathon", "Study Marathon", "Complete 100 hours of study time", "🏃", 100
    ),
    AchievementDefinition(
        "streak_master", "Streak Master", "Maintain a 30-day study streak", "🔥", 30
    ),
    AchievementDefinition(
        "perfect_week", "Perfect Week", "Study every day for 7 days", "⭐", 7
    ),
    AchievementDefinition(
        "night_owl", "Night Owl", "Study 10 sessions after 10 PM", "🦉", 10
    ),
    AchievementDefinition(
        "focused_mind", "Focused Mind", "Complete 50 study sessions", "🧠", 50
    ),
    AchievementDefinition(
        "time_warrior", "Time Warrior", "Study for 4 hours in a single day", "⏰", 4
    ),
)


def _started(session: StudySession) -> datetime:
    value = session.start_time or session.created_at
    # SQLite returns naive UTC datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def measure_progress(sessions: list[StudySession], today: date) -> dict[str, float]:
    """Current value per achievement type from completed study sessions.

    Hours of day are taken in UTC.
    """
    starts = [_started(s) for s in sessions]
    seconds_by_day: dict[date, int] = defaultdict(int)
    for session, started in zip(sessions, starts):
        seconds_by_day[started.date()] += session.duration_seconds

    streak = calculate_streak(list(seconds_by_day), today=today)
    early_days = [s.date() for s in starts if s.hour < EARLY_BIRD_BEFORE_HOUR]

    return {
        "early_bird": calculate_streak(early_days, today=today),
        "study_marathon": round(sum(seconds_by_day.values()) / 3600, 2),
        "streak_master": streak,
        "perfect_week": streak,
        "night_owl": sum(1 for s in starts if s.hour >= NIGHT_OWL_FROM_HOUR),
        "focused_mind": len(sessions),
        "time_warrior": round(max(seconds_by_day.values(), default=0) / 3600, 2),
    }


async def _completed_study_sessions(
    db: AsyncSession, user_id: uuid.UUID
) -> list[StudySession]:
    result = await db.execute(
        select(StudySession).where(
            StudySession.user_id == user_id,
            StudySession.mode == "study",
            StudySession.completed == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


async def refresh_achievements(
    db: AsyncSession, user_id: uuid.UUID
) -> tuple[list[dict], list[dict]]:
    """Recompute progress, unlock what was reached.

    Returns ``(all_achievements, newly_unlocked)`` as response dicts.
    Rows are created on first use and flushed, not committed.
    """
    now = datetime.now(timezone.utc)
    current = measure_progress(await _completed_study_sessions(db, user_id), now.date())

    result = await db.execute(select(Achievement).where(Achievement.user_id == user_id))
    rows = {a.achievement_type: a for a in result.scalars().all()}

    everything = []
    unlocked_now = []
    for definition in ACHIEVEMENTS:
        row = rows.get(definition.achievement_type)
        if row is None:
            row = Achievement(
                user_id=user_id,
                achievement_type=definition.achievement_type,
                unlocked=False,
            )
            db.add(row)

        value = current[definition.achievement_type]
        row.current = value
        row.progress = round(min(100.0, value / definition.target * 100), 1)
        if not row.unlocked and value >= definition.target:
            row.unlocked = True
            row.unlocked_at = now
            logger.info(
                "User %s unlocked achievement %s", user_id, definition.achievement_type
            )
            unlocked_now.append(_to_response(definition, row))
        everything.append(_to_response(definition, row))

    await db.flush()
    return everything, unlocked_now


async def get_achievements(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    achievements, _ = await refresh_achievements(db, user_id)
    return achievements


async def check_achievements(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """Unlock newly reached achievements and return only those."""
    _, unlocked = await refresh_achievements(db, user_id)
    return unlocked


def _to_response(definition: AchievementDefinition, row: Achievement) -> dict:
    return {
        "achievement_type": definition.achievement_type,
        "title": definition.title,
        "description": definition.description,
        "icon": definition.icon,
        "target": definition.target,
        "current": row.current,
        "progress": row.progress,
        "unlocked": row.unlocked,
        "unlocked_at": row.unlocked_at,
    }
