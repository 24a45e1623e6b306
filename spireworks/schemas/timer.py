from pydantic import BaseModel, Field

from spireworks.schemas.session import TimerModeName


class MaterialSelect(BaseModel):
    id: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    subject: str | None = Field(default=None, max_length=255)


class ModeSwitch(BaseModel):
    mode: TimerModeName
    confirmed: bool = False  # required to leave a running session


class BreakDurationSelect(BaseModel):
    minutes: int = Field(ge=1)


class RecommendationState(BaseModel):
    minutes: int
    insight: str | None
    method: str
    degraded: bool
    loading: bool


class TodayState(BaseModel):
    total_study_seconds: int
    completed_sessions: int
    current_streak: int
    goal_progress: float


class RecentSessionResponse(BaseModel):
    label: str
    mode: str
    duration_minutes: int
    finished_at: str


class TimerState(BaseModel):
    mode: TimerModeName
    mode_label: str
    state: str  # idle, running, paused, completing
    remaining_seconds: int
    total_seconds: int
    elapsed_seconds: int
    progress: float
    material: MaterialSelect | None
    has_completed_study: bool
    suggest_break: bool
    break_presets: list[int]
    recommendation: RecommendationState
    today: TodayState
    recent_sessions: list[RecentSessionResponse]
