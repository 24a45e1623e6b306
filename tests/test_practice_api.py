import uuid

import pytest
from sqlalchemy import select

from spireworks.main import app
from spireworks.models.practice_result import PracticeResult

QUESTIONS = [
    {
        "question": "Which organelle produces ATP?",
        "options": ["Nucleus", "Mitochondria", "Ribosome", "Golgi"],
        "correctAnswer": 1,
        "explanation": "Mitochondria run cellular respiration.",
    },
    {
        "question": "What carries genetic information?",
        "options": ["DNA", "Lipids", "Glucose", "Water"],
        "correctAnswer": 0,
    },
]


async def _start(client, questions=QUESTIONS) -> dict:
    response = await client.post(
        "/practice",
        json={
            "questions": questions,
            "material_id": "file-1",
            "material_name": "Cell Biology Notes",
            "subject": "Biology",
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_start_practice(client):
    data = await _start(client)

    assert data["state"] == "in_progress"
    assert data["current_index"] == 0
    assert data["question_count"] == 2
    assert data["remaining_seconds"] == 20
    assert data["question"]["prompt"] == "Which organelle produces ATP?"
    assert "correctAnswer" not in data["question"]


@pytest.mark.asyncio
async def test_start_practice_without_questions_is_400(client):
    response = await client.post("/practice", json={"questions": []})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_quiz_is_404(client):
    response = await client.get(f"/practice/{uuid.uuid4()}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_countdown_and_answers(client, scheduler):
    quiz_id = (await _start(client))["id"]

    scheduler.advance(5)
    data = (await client.get(f"/practice/{quiz_id}")).json()
    assert data["remaining_seconds"] == 15

    response = await client.post(f"/practice/{quiz_id}/answer", json={"option_index": 1})
    assert response.status_code == 200
    assert response.json()["question_state"] == "answered"

    response = await client.post(f"/practice/{quiz_id}/answer", json={"option_index": 2})
    assert response.status_code == 200
    assert response.json()["question_state"] == "answered"

    scheduler.advance(0.5)
    data = (await client.get(f"/practice/{quiz_id}")).json()
    assert data["current_index"] == 1

    response = await client.post(f"/practice/{quiz_id}/answer", json={"option_index": 9})
    assert response.status_code == 409
    assert response.json()["reason"] == "invalid_option"


@pytest.mark.asyncio
async def test_completed_quiz_results_are_stored(client, scheduler, db_session, test_user):
    quiz_id = (await _start(client))["id"]

    scheduler.advance(3)
    await client.post(f"/practice/{quiz_id}/answer", json={"option_index": 1})
    scheduler.advance(0.5)
    scheduler.advance(20)  # second question times out

    results = (await client.get(f"/practice/{quiz_id}/results")).json()
    assert results["state"] == "completed"
    assert results["score"] == 1
    assert results["total_questions"] == 2
    assert results["percentage"] == 50
    assert [a["timed_out"] for a in results["answers"]] == [False, True]
    assert results["answers"][0]["explanation"] == "Mitochondria run cellular respiration."
    assert results["answers"][1]["explanation"] == "No explanation available."

    await scheduler.drain()
    stored = (
        await db_session.execute(
            select(PracticeResult).where(PracticeResult.user_id == test_user.id)
        )
    ).scalar_one()
    assert stored.score == 1
    assert stored.total_questions == 2
    assert stored.total_seconds == 23
    assert stored.material_name == "Cell Biology Notes"
    assert len(stored.answers_json) == 2


@pytest.mark.asyncio
async def test_questions_with_unreachable_answer_are_dropped(client):
    questions = [
        {"question": "Broken", "options": ["a", "b"], "correctAnswer": 5},
        QUESTIONS[1],
    ]

    data = await _start(client, questions)

    assert data["question_count"] == 1
    assert data["question"]["prompt"] == "What carries genetic information?"


@pytest.mark.asyncio
async def test_only_unreachable_answers_is_400(client):
    response = await client.post(
        "/practice",
        json={"questions": [{"question": "Broken", "options": ["a"], "correctAnswer": 2}]},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_finished_quiz_is_evicted_after_results_grace_period(client, scheduler):
    quiz_id = (await _start(client))["id"]
    registry = app.state.quizzes

    scheduler.advance(20.5 + 20)
    assert (await client.get(f"/practice/{quiz_id}/results")).status_code == 200
    assert len(registry) == 1

    scheduler.advance(registry.results_ttl_seconds)
    await scheduler.drain()

    assert (await client.get(f"/practice/{quiz_id}/results")).status_code == 404
    assert len(registry) == 0
