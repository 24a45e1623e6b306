from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_STUDY_MINUTES = 25
MIN_STUDY_MINUTES = 5
MAX_STUDY_MINUTES = 60

DEGRADED_INSIGHT = "Using default recommendation due to connection issue."


class RecommendationInput(BaseModel):
    """Snapshot of today's study aggregates sent to the recommender.

    Field aliases match the ``studyData`` wire format of the web client.
    """

    hours_studied_today: float = Field(default=0.0, ge=0, alias="hoursStudiedToday")
    completed_session_count: int = Field(default=0, ge=0, alias="sessionCount")
    average_session_minutes: float = Field(default=25.0, ge=0, alias="averageSessionLength")
    hour_of_day: int = Field(
        default_factory=lambda: datetime.now().hour, ge=0, le=23, alias="timeOfDay"
    )
    fatigue: bool = Field(default=False, alias="fatigueLevel")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_aggregate(cls, aggregate, hour_of_day: int) -> "RecommendationInput":
        """Build the snapshot from a DailyAggregate-like object."""
        total = aggregate.total_study_seconds
        count = aggregate.completed_session_count
        return cls(
            hours_studied_today=total / 3600,
            completed_session_count=count,
            average_session_minutes=(total / count) / 60 if count > 0 else 25.0,
            hour_of_day=hour_of_day,
            fatigue=count >= 4,
        )


class RecommendationResult(BaseModel):
    minutes: int = Field(ge=MIN_STUDY_MINUTES, le=MAX_STUDY_MINUTES)
    insight_text: str | None = None
    method: str = "algorithm"  # "algorithm" or "ai"
    degraded: bool = False  # True when the default was substituted

    model_config = ConfigDict(frozen=True)

    @classmethod
    def fallback(cls) -> "RecommendationResult":
        return cls(
            minutes=DEFAULT_STUDY_MINUTES,
            insight_text=DEGRADED_INSIGHT,
            method="algorithm",
            degraded=True,
        )


class RecommendationRequest(BaseModel):
    study_data: RecommendationInput | None = Field(default=None, alias="studyData")

    model_config = ConfigDict(populate_by_name=True)


class RecommendationResponse(BaseModel):
    success: bool = True
    recommendedMinutes: int
    method: str
    insights: str | None = None
