import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TimerModeName = Literal["study", "break", "longbreak"]


class SessionRecord(BaseModel):
    """A finished or in-progress timer session sent for persistence.

    Autosave checkpoints send the cumulative elapsed time with
    ``completed=False``; the final record has ``completed=True``.
    """

    mode: TimerModeName = "study"
    duration_seconds: int = Field(ge=0)
    completed: bool = False
    ai_recommended: bool = False
    ai_recommended_minutes: int | None = Field(default=None, ge=1)
    material_id: str | None = Field(default=None, max_length=255)
    material_name: str | None = Field(default=None, max_length=255)
    subject: str | None = Field(default=None, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    study_data: dict | None = None


class SessionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    mode: str
    duration_seconds: int
    completed: bool
    ai_recommended: bool
    ai_recommended_minutes: int | None
    material_id: str | None
    material_name: str | None
    subject: str | None
    start_time: datetime | None
    end_time: datetime | None
    study_data: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionStats(BaseModel):
    period: str  # week, month, year
    total_study_hours: float
    total_sessions: int
    average_session_minutes: float
    sessions_today: int
    today_study_hours: float
    current_streak: int


class SessionCreate(SessionRecord):
    # Optional here so a missing duration is a 400 rather than a schema error
    duration_seconds: int | None = Field(default=None, ge=0)
