"""Live timers and practice quizzes, one set per process.

The HTTP layer is stateless; the state machines are not. Both registries
live on ``app.state`` and share one ``Scheduler``.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import async_sessionmaker

from spireworks.models.practice_result import PracticeResult
from spireworks.models.user import User
from spireworks.services.achievement_service import check_achievements
from spireworks.schemas.preferences import Preferences
from spireworks.services.preferences_service import SETTINGS_KEY, merge_preferences
from spireworks.services.quiz_countdown import PracticeQuestion, QuizCountdown
from spireworks.services.recommendation_service import (
    LLMProvider,
    LocalRecommendationClient,
)
from spireworks.services.scheduler import Scheduler
from spireworks.services.session_service import DatabaseSessionPersistence
from spireworks.services.study_timer import StudyMaterial, StudyTimer, TimerConfig

logger = logging.getLogger(__name__)


class TimerRegistry:
    def __init__(
        self,
        scheduler: Scheduler,
        session_factory: async_sessionmaker,
        provider: LLMProvider | None = None,
        redis_client=None,
        config: TimerConfig | None = None,
    ):
        self.scheduler = scheduler
        self.session_factory = session_factory
        self.provider = provider
        self.redis_client = redis_client
        self.config = config or TimerConfig()
        self._timers: dict[uuid.UUID, StudyTimer] = {}

    def get(self, user: User) -> StudyTimer:
        """Return the user's timer, creating it with their stored preferences."""
        timer = self._timers.get(user.id)
        if timer is None:
            stored = (user.settings_json or {}).get(SETTINGS_KEY)
            timer = StudyTimer(
                recommender=LocalRecommendationClient(
                    self.provider, self.redis_client, str(user.id)
                ),
                persistence=DatabaseSessionPersistence(
                    self.session_factory, user.id, on_completed=check_achievements
                ),
                scheduler=self.scheduler,
                preferences=merge_preferences(stored),
                config=self.config,
            )
            self._timers[user.id] = timer
            logger.info("Created study timer for user %s", user.id)
        return timer

    def update_preferences(self, user_id: uuid.UUID, preferences: Preferences) -> None:
        timer = self._timers.get(user_id)
        if timer is not None:
            timer.update_preferences(preferences)

    def close(self) -> None:
        for timer in self._timers.values():
            timer.close()
        self._timers.clear()


class QuizRegistry:
    def __init__(
        self,
        scheduler: Scheduler,
        session_factory: async_sessionmaker,
        question_seconds: int = 20,
        advance_delay: float = 0.5,
        results_ttl_seconds: float = 600.0,
    ):
        self.scheduler = scheduler
        self.session_factory = session_factory
        self.question_seconds = question_seconds
        self.advance_delay = advance_delay
        self.results_ttl_seconds = results_ttl_seconds
        self._quizzes: dict[uuid.UUID, tuple[uuid.UUID, QuizCountdown]] = {}

    def create(
        self,
        user_id: uuid.UUID,
        questions: list[PracticeQuestion],
        material: StudyMaterial | None = None,
    ) -> tuple[uuid.UUID, QuizCountdown]:
        """Build and start a quiz; raises ValueError when there are no questions."""
        quiz_id = uuid.uuid4()

        def on_complete(quiz: QuizCountdown) -> None:
            self.scheduler.spawn(self._save_result(user_id, material, quiz))
            self.scheduler.call_later(
                self.results_ttl_seconds, lambda: self._evict(quiz_id, quiz)
            )

        quiz = QuizCountdown(
            questions,
            self.scheduler,
            question_seconds=self.question_seconds,
            advance_delay=self.advance_delay,
            on_complete=on_complete,
        )
        self._quizzes[quiz_id] = (user_id, quiz)
        quiz.start()
        return quiz_id, quiz

    def get(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> QuizCountdown | None:
        entry = self._quizzes.get(quiz_id)
        if entry is None or entry[0] != user_id:
            return None
        return entry[1]

    def __len__(self) -> int:
        return len(self._quizzes)

    def _evict(self, quiz_id: uuid.UUID, quiz: QuizCountdown) -> None:
        # Every quiz completes on its own once its questions time out, so
        # abandoned quizzes are evicted too.
        entry = self._quizzes.get(quiz_id)
        if entry is not None and entry[1] is quiz:
            del self._quizzes[quiz_id]

    async def _save_result(
        self,
        user_id: uuid.UUID,
        material: StudyMaterial | None,
        quiz: QuizCountdown,
    ) -> None:
        results = quiz.results()
        try:
            async with self.session_factory() as db:
                db.add(
                    PracticeResult(
                        user_id=user_id,
                        material_id=material.id if material else None,
                        material_name=material.name if material else None,
                        subject=material.subject if material else None,
                        score=results["score"],
                        total_questions=results["total_questions"],
                        total_seconds=results["total_elapsed_seconds"],
                        answers_json=results["answers"],
                    )
                )
                await db.commit()
        except Exception:
            logger.exception("Failed to store practice result for user %s", user_id)

    def close(self) -> None:
        for _, quiz in self._quizzes.values():
            quiz.cancel()
        self._quizzes.clear()
