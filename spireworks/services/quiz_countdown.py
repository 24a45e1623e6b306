"""Solo practice quiz countdown.

Each question gets a fixed countdown. Answering or running out of time
records exactly one ``QuizAnswer`` for the question; the quiz then moves on
after a short delay, or completes immediately after the last question. A
separate counter measures total time from start to completion.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass
from enum import Enum

from spireworks.services.actions import ActionResult, Rejection
from spireworks.services.scheduler import ScheduledCall, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_EXPLANATION = "No explanation available."


@dataclass(frozen=True)
class PracticeQuestion:
    prompt: str
    options: tuple[str, ...]
    correct_option_index: int = 0
    explanation: str = DEFAULT_EXPLANATION


@dataclass(frozen=True)
class QuizAnswer:
    question_index: int
    selected_option_index: int | None
    correct_option_index: int
    is_correct: bool
    timed_out: bool


class QuestionState(str, Enum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    TIMED_OUT = "timed_out"


class QuizState(str, Enum):
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def normalize_questions(raw: Iterable) -> list[PracticeQuestion]:
    """Build questions from generator output, skipping unusable entries.

    Entries need a prompt (``question`` or ``prompt``) and a non-empty
    options list; a missing correct index defaults to 0. Entries whose
    correct index falls outside their options are dropped.
    """
    questions = []
    for item in raw or []:
        if isinstance(item, PracticeQuestion):
            if 0 <= item.correct_option_index < len(item.options):
                questions.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        prompt = item.get("question") or item.get("prompt")
        options = item.get("options")
        if not prompt or not isinstance(options, (list, tuple)) or not options:
            continue
        correct = item.get("correctAnswer", item.get("correct_option_index"))
        if not isinstance(correct, int) or isinstance(correct, bool):
            correct = 0
        if not 0 <= correct < len(options):
            continue
        questions.append(
            PracticeQuestion(
                prompt=str(prompt),
                options=tuple(str(o) for o in options),
                correct_option_index=correct,
                explanation=item.get("explanation") or DEFAULT_EXPLANATION,
            )
        )
    return questions


class QuizCountdown:
    def __init__(
        self,
        questions: list[PracticeQuestion],
        scheduler: Scheduler,
        question_seconds: int = 20,
        advance_delay: float = 0.5,
        on_complete: Callable[["QuizCountdown"], None] | None = None,
    ):
        if not questions:
            raise ValueError("A practice quiz needs at least one question")
        if question_seconds <= 0:
            raise ValueError("question_seconds must be positive")

        self.questions = tuple(questions)
        self.scheduler = scheduler
        self.question_seconds = question_seconds
        self.advance_delay = advance_delay
        self.on_complete = on_complete

        self.state = QuizState.READY
        self.current_index = 0
        self.question_state = QuestionState.UNANSWERED
        self.remaining_seconds = question_seconds
        self.total_elapsed_seconds = 0
        self.answers: list[QuizAnswer] = []
        self.final_score: int | None = None

        self._generation = 0
        self._question_handle: ScheduledCall | None = None
        self._total_handle: ScheduledCall | None = None
        self._advance_handle: ScheduledCall | None = None

    @property
    def current_question(self) -> PracticeQuestion:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    # -- actions -----------------------------------------------------------

    def start(self) -> ActionResult:
        if self.state is not QuizState.READY:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, f"Quiz is already {self.state.value}"
            )
        self.state = QuizState.IN_PROGRESS
        self._begin_question(0)
        self._schedule_total_tick()
        return ActionResult.accepted()

    def select_answer(self, option_index: int) -> ActionResult:
        if self.state is not QuizState.IN_PROGRESS:
            return ActionResult.rejected(
                Rejection.INVALID_STATE, f"Quiz is {self.state.value}"
            )
        if self.question_state is not QuestionState.UNANSWERED:
            # Answered or timed out: later answers change nothing
            return ActionResult.accepted()
        if not 0 <= option_index < len(self.current_question.options):
            return ActionResult.rejected(
                Rejection.INVALID_OPTION, f"No option {option_index} for this question"
            )
        self._record(option_index, timed_out=False)
        return ActionResult.accepted()

    # -- ticking -----------------------------------------------------------

    def tick(self) -> None:
        """Count the current question down by one second."""
        if (
            self.state is not QuizState.IN_PROGRESS
            or self.question_state is not QuestionState.UNANSWERED
        ):
            return
        self.remaining_seconds = max(self.remaining_seconds - 1, 0)
        if self.remaining_seconds == 0:
            self._record(None, timed_out=True)

    def tick_total(self) -> None:
        if self.state is QuizState.IN_PROGRESS:
            self.total_elapsed_seconds += 1

    def _schedule_question_tick(self) -> None:
        generation = self._generation
        self._question_handle = self.scheduler.call_later(
            1.0, lambda: self._on_question_tick(generation)
        )

    def _on_question_tick(self, generation: int) -> None:
        if generation != self._generation:
            return
        self.tick()
        if generation == self._generation and self.question_state is QuestionState.UNANSWERED:
            self._schedule_question_tick()

    def _schedule_total_tick(self) -> None:
        def on_total_tick() -> None:
            if self.state is not QuizState.IN_PROGRESS:
                return
            self.tick_total()
            self._schedule_total_tick()

        self._total_handle = self.scheduler.call_later(1.0, on_total_tick)

    # -- transitions -------------------------------------------------------

    def _begin_question(self, index: int) -> None:
        self._generation += 1
        self.current_index = index
        self.question_state = QuestionState.UNANSWERED
        self.remaining_seconds = self.question_seconds
        self._schedule_question_tick()

    def _record(self, selected: int | None, timed_out: bool) -> None:
        question = self.current_question
        self.answers.append(
            QuizAnswer(
                question_index=self.current_index,
                selected_option_index=selected,
                correct_option_index=question.correct_option_index,
                is_correct=not timed_out and selected == question.correct_option_index,
                timed_out=timed_out,
            )
        )
        self.question_state = QuestionState.TIMED_OUT if timed_out else QuestionState.ANSWERED

        self._generation += 1
        if self._question_handle is not None:
            self._question_handle.cancel()
            self._question_handle = None

        if self.is_last_question:
            self._finish()
            return

        generation = self._generation
        next_index = self.current_index + 1

        def advance() -> None:
            if generation == self._generation and self.state is QuizState.IN_PROGRESS:
                self._begin_question(next_index)

        self._advance_handle = self.scheduler.call_later(self.advance_delay, advance)

    def _finish(self) -> None:
        self.state = QuizState.COMPLETED
        self.final_score = sum(1 for a in self.answers if a.is_correct)
        if self._total_handle is not None:
            self._total_handle.cancel()
            self._total_handle = None
        if self.on_complete is not None:
            try:
                self.on_complete(self)
            except Exception:
                logger.exception("Quiz completion callback failed")

    def cancel(self) -> None:
        """Stop every pending callback without recording anything."""
        self._generation += 1
        for handle in (self._question_handle, self._total_handle, self._advance_handle):
            if handle is not None:
                handle.cancel()
        self._question_handle = self._total_handle = self._advance_handle = None

    # -- results -----------------------------------------------------------

    def results(self) -> dict:
        total = len(self.questions)
        score = self.final_score if self.final_score is not None else sum(
            1 for a in self.answers if a.is_correct
        )
        return {
            "state": self.state.value,
            "score": score,
            "total_questions": total,
            "percentage": round(score / total * 100) if total else 0,
            "total_elapsed_seconds": self.total_elapsed_seconds,
            "answers": [
                {
                    **asdict(answer),
                    "prompt": self.questions[answer.question_index].prompt,
                    "options": list(self.questions[answer.question_index].options),
                    "explanation": self.questions[answer.question_index].explanation,
                }
                for answer in self.answers
            ],
        }

    def snapshot(self) -> dict:
        question = self.current_question
        return {
            "state": self.state.value,
            "current_index": self.current_index,
            "question_count": len(self.questions),
            "question_state": self.question_state.value,
            "remaining_seconds": self.remaining_seconds,
            "total_elapsed_seconds": self.total_elapsed_seconds,
            "question": {"prompt": question.prompt, "options": list(question.options)},
            "answered": len(self.answers),
        }
