import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status

from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.practice import (
    AnswerSubmit,
    PracticeCreate,
    PracticeResults,
    PracticeState,
)
from spireworks.services.actions import ensure_accepted
from spireworks.services.quiz_countdown import QuizCountdown, normalize_questions
from spireworks.services.study_timer import StudyMaterial

router = APIRouter(prefix="/practice", tags=["practice"])


def _get_quiz(req: Request, user: User, quiz_id: uuid.UUID) -> QuizCountdown:
    quiz = req.app.state.quizzes.get(user.id, quiz_id)
    if quiz is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Practice quiz not found"
        )
    return quiz


@router.post("", response_model=PracticeState, status_code=201)
async def start_practice(
    data: PracticeCreate,
    req: Request,
    user: User = Depends(get_current_user),
):
    """Start a timed quiz; unusable questions are dropped."""
    questions = normalize_questions([q.model_dump() for q in data.questions])
    material = None
    if data.material_id and data.material_name:
        material = StudyMaterial(data.material_id, data.material_name, data.subject)

    quiz_id, quiz = req.app.state.quizzes.create(user.id, questions, material)
    return {"id": quiz_id, **quiz.snapshot()}


@router.get("/{quiz_id}", response_model=PracticeState)
async def get_practice(
    quiz_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
):
    quiz = _get_quiz(req, user, quiz_id)
    return {"id": quiz_id, **quiz.snapshot()}


@router.post("/{quiz_id}/answer", response_model=PracticeState)
async def answer_question(
    quiz_id: uuid.UUID,
    data: AnswerSubmit,
    req: Request,
    user: User = Depends(get_current_user),
):
    quiz = _get_quiz(req, user, quiz_id)
    ensure_accepted(quiz.select_answer(data.option_index))
    return {"id": quiz_id, **quiz.snapshot()}


@router.get("/{quiz_id}/results", response_model=PracticeResults)
async def get_results(
    quiz_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
):
    quiz = _get_quiz(req, user, quiz_id)
    return {"id": quiz_id, **quiz.results()}
