import uuid

from pydantic import BaseModel, Field


class PracticeQuestionIn(BaseModel):
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=1)
    correctAnswer: int = 0
    explanation: str | None = None


class PracticeCreate(BaseModel):
    questions: list[PracticeQuestionIn]
    material_id: str | None = Field(default=None, max_length=255)
    material_name: str | None = Field(default=None, max_length=255)
    subject: str | None = Field(default=None, max_length=255)


class AnswerSubmit(BaseModel):
    option_index: int


class QuestionView(BaseModel):
    prompt: str
    options: list[str]


class PracticeState(BaseModel):
    id: uuid.UUID
    state: str  # ready, in_progress, completed
    current_index: int
    question_count: int
    question_state: str
    remaining_seconds: int
    total_elapsed_seconds: int
    question: QuestionView
    answered: int


class AnswerResult(BaseModel):
    question_index: int
    selected_option_index: int | None
    correct_option_index: int
    is_correct: bool
    timed_out: bool
    prompt: str
    options: list[str]
    explanation: str


class PracticeResults(BaseModel):
    id: uuid.UUID
    state: str
    score: int
    total_questions: int
    percentage: int
    total_elapsed_seconds: int
    answers: list[AnswerResult]
