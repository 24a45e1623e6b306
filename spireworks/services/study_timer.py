"""Study timer state machine.

Owns the countdown for one student: mode transitions between study and
breaks, one-second ticks, autosave checkpoints, completion handling and
the study duration recommendation. Every operation is synchronous; slow
collaborators (recommender, session persistence) run as background tasks
through the ``Scheduler`` and write their results back into the timer.

Every scheduled callback remembers the generation it was created for.
Pausing, resetting, switching mode and completing bump the generation,
so a callback from a superseded session does nothing.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum

from spireworks.schemas.preferences import Preferences
from spireworks.schemas.recommendation import (
    DEFAULT_STUDY_MINUTES,
    RecommendationInput,
    RecommendationResult,
)
from spireworks.schemas.session import SessionRecord
from spireworks.services.actions import ActionResult, Rejection
from spireworks.services.preferences_service import should_notify
from spireworks.services.recommendation_service import (
    RecommendationClient,
    normalize_recommendation,
)
from spireworks.services.scheduler import ScheduledCall, Scheduler
from spireworks.services.session_service import SessionPersistenceClient

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class TimerMode(str, Enum):
    STUDY = "study"
    SHORT_BREAK = "break"
    LONG_BREAK = "longbreak"

    @property
    def label(self) -> str:
        return MODE_LABELS[self]


MODE_LABELS = {
    TimerMode.STUDY: "Focus Time",
    TimerMode.SHORT_BREAK: "Short Break",
    TimerMode.LONG_BREAK: "Long Break",
}


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETING = "completing"


@dataclass(frozen=True)
class StudyMaterial:
    """A file or reviewer a study session is tied to."""

    id: str
    name: str
    subject: str | None = None


@dataclass
class TimerSession:
    mode: TimerMode
    planned_duration_seconds: int
    elapsed_seconds: int = 0
    started_at: datetime | None = None
    material: StudyMaterial | None = None
    ai_recommended: bool = False
    last_autosave_elapsed: int = 0

    @property
    def remaining_seconds(self) -> int:
        return max(self.planned_duration_seconds - self.elapsed_seconds, 0)


@dataclass
class DailyAggregate:
    """Today's totals. Lives as long as the process; there is no day rollover."""

    total_study_seconds: int = 0
    completed_session_count: int = 0
    current_streak_days: int = 0


@dataclass(frozen=True)
class RecentSession:
    label: str
    mode: TimerMode
    duration_minutes: int
    finished_at: datetime


@dataclass(frozen=True)
class TimerEvent:
    kind: str  # started, paused, reset, mode_changed, tick, autosaved, completed, ...
    data: dict = field(default_factory=dict)


TimerListener = Callable[[TimerEvent], None]


@dataclass(frozen=True)
class TimerConfig:
    autosave_interval_seconds: int = 60
    auto_start_delay_seconds: float = 2.0
    recommendation_timeout_seconds: float = 3.0
    daily_goal_seconds: int = 4 * 3600
    recent_sessions_limit: int = 5
    break_presets: dict = field(
        default_factory=lambda: {
            TimerMode.SHORT_BREAK: (5, 10, 15),
            TimerMode.LONG_BREAK: (15, 20, 30),
        }
    )

    @classmethod
    def from_settings(cls, settings) -> "TimerConfig":
        return cls(
            autosave_interval_seconds=settings.AUTOSAVE_INTERVAL_SECONDS,
            auto_start_delay_seconds=settings.AUTO_START_DELAY_SECONDS,
            recommendation_timeout_seconds=settings.RECOMMENDATION_TIMEOUT_SECONDS,
            daily_goal_seconds=settings.DAILY_GOAL_SECONDS,
        )


class StudyTimer:
    def __init__(
        self,
        recommender: RecommendationClient,
        persistence: SessionPersistenceClient,
        scheduler: Scheduler,
        preferences: Preferences | None = None,
        config: TimerConfig | None = None,
        aggregate: DailyAggregate | None = None,
    ):
        self.recommender = recommender
        self.persistence = persistence
        self.scheduler = scheduler
        self.preferences = preferences or Preferences()
        self.config = config or TimerConfig()
        self.aggregate = aggregate or DailyAggregate()

        self.mode = TimerMode.STUDY
        self.state = RunState.IDLE
        self.material: StudyMaterial | None = None
        self.has_completed_study = False
        self.suggest_break = False
        self.recommendation = RecommendationResult(minutes=DEFAULT_STUDY_MINUTES)
        self.loading_recommendation = False
        self.last_discarded_session: TimerSession | None = None
        self.recent_sessions: deque[RecentSession] = deque(
            maxlen=self.config.recent_sessions_limit
        )

        self._preset_index = {mode: 0 for mode in self.config.break_presets}
        self._study_minutes = DEFAULT_STUDY_MINUTES
        self._study_minutes_from_client = False
        self._generation = 0
        self._recommendation_seq = 0
        self._tick_handle: ScheduledCall | None = None
        self._pending: list[ScheduledCall] = []
        self._listeners: list[TimerListener] = []

        self.session = self._new_session(TimerMode.STUDY)
        self._request_recommendation()

    # -- read-only views ---------------------------------------------------

    @property
    def remaining_seconds(self) -> int:
        return self.session.remaining_seconds

    @property
    def total_seconds(self) -> int:
        return self.session.planned_duration_seconds

    @property
    def elapsed_seconds(self) -> int:
        return self.session.elapsed_seconds

    @property
    def progress(self) -> float:
        """Fraction of the current session that has elapsed (0.0-1.0)."""
        if self.total_seconds <= 0:
            return 0.0
        return self.elapsed_seconds / self.total_seconds

    @property
    def daily_goal_progress(self) -> float:
        """Share of the daily study goal reached (0.0-1.0)."""
        goal = self.config.daily_goal_seconds
        if goal <= 0:
            return 0.0
        return min(1.0, self.aggregate.total_study_seconds / goal)

    def break_presets(self, mode: TimerMode | None = None) -> tuple[int, ...]:
        return tuple(self.config.break_presets.get(mode or self.mode, ()))

    def canonical_seconds(self, mode: TimerMode) -> int:
        """Full duration of a fresh session in ``mode``."""
        if mode is TimerMode.STUDY:
            return self._study_minutes * 60
        presets = self.config.break_presets[mode]
        return presets[self._preset_index[mode]] * 60

    # -- listeners ---------------------------------------------------------

    def subscribe(self, listener: TimerListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **data) -> None:
        event = TimerEvent(kind, data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Timer listener failed on %s", kind)

    # -- user actions ------------------------------------------------------

    def select_material(self, material: StudyMaterial) -> ActionResult:
        self.material = material
        if self.session.mode is TimerMode.STUDY and self.session.elapsed_seconds == 0:
            self.session.material = material
        self._emit("material_selected", material=asdict(material))
        return ActionResult.accepted()

    def clear_material(self) -> ActionResult:
        self.material = None
        if self.session.elapsed_seconds == 0:
            self.session.material = None
        return ActionResult.accepted()

    def update_preferences(self, preferences: Preferences) -> None:
        self.preferences = preferences

    def start(self) -> ActionResult:
        if self.state not in (RunState.IDLE, RunState.PAUSED):
            return ActionResult.rejected(
                Rejection.INVALID_STATE, f"Timer cannot start while {self.state.value}"
            )
        if self.session.remaining_seconds <= 0:
            return ActionResult.rejected(
                Rejection.NO_TIME_REMAINING, "No time remaining in this session"
            )
        if self.mode is TimerMode.STUDY and self.material is None:
            return ActionResult.rejected(
                Rejection.MATERIAL_REQUIRED,
                "Select a file or reviewer before starting a study session",
            )

        if self.mode is TimerMode.STUDY and self.session.material is None:
            self.session.material = self.material
        if self.session.started_at is None:
            self.session.started_at = self.scheduler.now()

        self.state = RunState.RUNNING
        self._generation += 1
        self._schedule_tick()
        self._emit("started", mode=self.mode.value, remaining=self.remaining_seconds)
        return ActionResult.accepted()

    def pause(self) -> ActionResult:
        """Stop the countdown. Pausing a timer that is not running is a no-op."""
        if self.state is RunState.RUNNING:
            self._halt()
            self.state = RunState.PAUSED
            self._emit("paused", elapsed=self.elapsed_seconds)
        return ActionResult.accepted()

    def reset(self) -> ActionResult:
        """Pause, then restore the canonical duration for the current mode."""
        if self.state is RunState.COMPLETING:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, "Timer is completing a session"
            )
        self.pause()
        self._halt()
        self.session = self._new_session(self.mode)
        self.state = RunState.IDLE
        self._emit("reset", mode=self.mode.value, total=self.total_seconds)
        return ActionResult.accepted()

    def skip(self) -> ActionResult:
        """Finish the current session now with whatever time has elapsed."""
        if self.state is RunState.COMPLETING:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, "Timer is completing a session"
            )
        self.pause()
        self._complete()
        return ActionResult.accepted()

    def switch_mode(self, target: TimerMode | str, confirmed: bool = False) -> ActionResult:
        """Change mode.

        Breaks stay locked until a study session has completed. A running
        timer is only switched with ``confirmed=True``: it is paused first
        and the interrupted session is kept in ``last_discarded_session``.
        """
        target = TimerMode(target)
        if (
            target is not TimerMode.STUDY
            and not self.has_completed_study
            and target is not self.mode
        ):
            return ActionResult.rejected(
                Rejection.STUDY_SESSION_REQUIRED,
                "Please complete a study session first before taking a break!",
            )
        if self.state is RunState.COMPLETING:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, "Timer is completing a session"
            )
        if target is self.mode:
            return ActionResult.accepted()
        if self.state is RunState.RUNNING and not confirmed:
            return ActionResult.rejected(
                Rejection.CONFIRMATION_REQUIRED,
                "Switch mode? The current timer will be paused.",
            )

        self.pause()
        self._halt()
        if self.session.started_at is not None:
            self.last_discarded_session = replace(self.session)
        self.suggest_break = False
        self._enter_mode(target)
        return ActionResult.accepted()

    def pause_then_switch(self, target: TimerMode | str) -> ActionResult:
        return self.switch_mode(target, confirmed=True)

    def select_break_duration(self, minutes: int) -> ActionResult:
        if self.mode is TimerMode.STUDY:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, "Study length comes from the recommendation"
            )
        if self.state is RunState.RUNNING:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, "Pause the timer before changing its length"
            )
        presets = self.break_presets()
        if minutes not in presets:
            return ActionResult.rejected(
                Rejection.UNKNOWN_PRESET,
                f"{minutes} minutes is not one of {list(presets)}",
            )
        self._preset_index[self.mode] = presets.index(minutes)
        return self.reset()

    def close(self) -> None:
        """Stop the timer for good; pending callbacks become no-ops."""
        self._halt()
        self._listeners.clear()

    # -- ticking -----------------------------------------------------------

    def tick(self) -> None:
        """Advance the running session by one second."""
        if self.state is not RunState.RUNNING:
            return

        session = self.session
        if session.remaining_seconds > 0:
            session.elapsed_seconds += 1
        self._emit("tick", elapsed=session.elapsed_seconds, remaining=session.remaining_seconds)

        interval = self.config.autosave_interval_seconds
        if (
            session.mode is TimerMode.STUDY
            and interval > 0
            and session.elapsed_seconds % interval == 0
            and session.elapsed_seconds > session.last_autosave_elapsed
            and session.remaining_seconds > 0
        ):
            session.last_autosave_elapsed = session.elapsed_seconds
            self._persist(self._build_record(session, completed=False), "autosave")
            self._emit("autosaved", elapsed=session.elapsed_seconds)

        if session.remaining_seconds == 0:
            self._complete()

    def _schedule_tick(self) -> None:
        generation = self._generation
        self._tick_handle = self.scheduler.call_later(
            TICK_SECONDS, lambda: self._on_tick_due(generation)
        )

    def _on_tick_due(self, generation: int) -> None:
        if generation != self._generation or self.state is not RunState.RUNNING:
            return
        self.tick()
        if generation == self._generation and self.state is RunState.RUNNING:
            self._schedule_tick()

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        generation = self._generation

        def guarded() -> None:
            if generation == self._generation:
                callback()

        self._pending.append(self.scheduler.call_later(delay, guarded))

    def _halt(self) -> None:
        """Cancel every pending callback and invalidate the ones in flight."""
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        self._generation += 1

    # -- completion --------------------------------------------------------

    def _complete(self) -> None:
        if self.state is RunState.COMPLETING:
            return
        self._halt()
        self.state = RunState.COMPLETING

        session = self.session
        finished = session.mode
        self.recent_sessions.appendleft(
            RecentSession(
                label="Study Session" if finished is TimerMode.STUDY else finished.label,
                mode=finished,
                duration_minutes=session.elapsed_seconds // 60,
                finished_at=self.scheduler.now(),
            )
        )

        if finished is TimerMode.STUDY:
            self.aggregate.completed_session_count += 1
            self.aggregate.current_streak_days += 1
            self.aggregate.total_study_seconds += session.elapsed_seconds
            self.has_completed_study = True
            self._persist(self._build_record(session, completed=True), "completion")
        self._emit("completed", mode=finished.value, elapsed=session.elapsed_seconds)
        self._notify_completion(finished)

        if finished is TimerMode.STUDY:
            self.suggest_break = True
            self._enter_mode(TimerMode.SHORT_BREAK)
            if self.preferences.auto_start_break:
                self._schedule(self.config.auto_start_delay_seconds, self.start)
        else:
            self.suggest_break = False
            self._enter_mode(TimerMode.STUDY)
            if self.preferences.auto_start_study:
                self._schedule(
                    self.config.auto_start_delay_seconds,
                    lambda: self._emit("material_requested"),
                )

    def _notify_completion(self, mode: TimerMode) -> None:
        body = f"{mode.label} completed!"
        for channel in ("sound", "desktop"):
            if should_notify(self.preferences, channel):
                self._emit(
                    "notification",
                    channel=channel,
                    title="SpireWorks Study Timer",
                    body=body,
                )

    def _enter_mode(self, mode: TimerMode) -> None:
        self.mode = mode
        self.session = self._new_session(mode)
        self.state = RunState.IDLE
        self._emit("mode_changed", mode=mode.value, total=self.total_seconds)
        if mode is TimerMode.STUDY:
            self._request_recommendation()

    def _new_session(self, mode: TimerMode) -> TimerSession:
        is_study = mode is TimerMode.STUDY
        return TimerSession(
            mode=mode,
            planned_duration_seconds=self.canonical_seconds(mode),
            material=self.material if is_study else None,
            ai_recommended=is_study and self._study_minutes_from_client,
        )

    # -- collaborators -----------------------------------------------------

    def _build_record(self, session: TimerSession, completed: bool) -> SessionRecord:
        material = session.material
        snapshot = RecommendationInput.from_aggregate(
            self.aggregate, self.scheduler.now().hour
        )
        return SessionRecord(
            mode=session.mode.value,
            duration_seconds=session.elapsed_seconds,
            completed=completed,
            ai_recommended=completed and session.ai_recommended,
            ai_recommended_minutes=(
                session.planned_duration_seconds // 60 if session.ai_recommended else None
            ),
            material_id=material.id if material else None,
            material_name=material.name if material else None,
            subject=material.subject if material else None,
            start_time=session.started_at,
            end_time=self.scheduler.now() if completed else None,
            study_data=snapshot.model_dump(by_alias=True),
        )

    def _persist(self, record: SessionRecord, purpose: str) -> None:
        self.scheduler.spawn(self._send_record(record, purpose))

    async def _send_record(self, record: SessionRecord, purpose: str) -> None:
        try:
            await self.persistence.create_session(record)
        except Exception:
            logger.exception(
                "Session %s failed at %ds elapsed", purpose, record.duration_seconds
            )

    def _request_recommendation(self) -> None:
        self._recommendation_seq += 1
        request_id = self._recommendation_seq
        snapshot = RecommendationInput.from_aggregate(
            self.aggregate, self.scheduler.now().hour
        )
        self.loading_recommendation = True
        self.scheduler.spawn(self._fetch_recommendation(request_id, snapshot))

    async def _fetch_recommendation(
        self, request_id: int, snapshot: RecommendationInput
    ) -> None:
        try:
            raw = await asyncio.wait_for(
                self.recommender.get_recommended_duration(snapshot),
                timeout=self.config.recommendation_timeout_seconds,
            )
            result = normalize_recommendation(raw)
        except Exception:
            logger.exception("Study duration recommendation failed, using default")
            result = RecommendationResult.fallback()
        self.apply_recommendation(request_id, result)

    def apply_recommendation(self, request_id: int, result: RecommendationResult) -> None:
        """Store a recommendation; resize the study session if it has not started.

        Any idle study session that has not started takes the new length,
        including one created by a reset while the request was in flight.
        """
        if request_id != self._recommendation_seq:
            return
        self.loading_recommendation = False
        self.recommendation = result
        self._study_minutes = result.minutes
        self._study_minutes_from_client = not result.degraded

        session = self.session
        if (
            session.mode is TimerMode.STUDY
            and self.state is RunState.IDLE
            and session.elapsed_seconds == 0
            and session.started_at is None
        ):
            session.planned_duration_seconds = result.minutes * 60
            session.ai_recommended = not result.degraded
        self._emit(
            "recommendation",
            minutes=result.minutes,
            insight=result.insight_text,
            method=result.method,
        )

    # -- rendering ---------------------------------------------------------

    def snapshot(self) -> dict:
        material = self.material
        return {
            "mode": self.mode.value,
            "mode_label": self.mode.label,
            "state": self.state.value,
            "remaining_seconds": self.remaining_seconds,
            "total_seconds": self.total_seconds,
            "elapsed_seconds": self.elapsed_seconds,
            "progress": round(self.progress, 4),
            "material": asdict(material) if material else None,
            "has_completed_study": self.has_completed_study,
            "suggest_break": self.suggest_break,
            "break_presets": list(self.break_presets()),
            "recommendation": {
                "minutes": self.recommendation.minutes,
                "insight": self.recommendation.insight_text,
                "method": self.recommendation.method,
                "degraded": self.recommendation.degraded,
                "loading": self.loading_recommendation,
            },
            "today": {
                "total_study_seconds": self.aggregate.total_study_seconds,
                "completed_sessions": self.aggregate.completed_session_count,
                "current_streak": self.aggregate.current_streak_days,
                "goal_progress": round(self.daily_goal_progress, 4),
            },
            "recent_sessions": [
                {
                    "label": s.label,
                    "mode": s.mode.value,
                    "duration_minutes": s.duration_minutes,
                    "finished_at": s.finished_at.isoformat(),
                }
                for s in self.recent_sessions
            ],
        }
