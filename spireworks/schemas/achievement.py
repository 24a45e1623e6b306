from datetime import datetime

from pydantic import BaseModel


class AchievementResponse(BaseModel):
    achievement_type: str
    title: str
    description: str
    icon: str
    target: int
    current: float
    progress: float  # percent, 0-100
    unlocked: bool
    unlocked_at: datetime | None


class AchievementCheckResponse(BaseModel):
    unlocked: list[AchievementResponse]
