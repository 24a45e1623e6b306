from fastapi import APIRouter, Depends, Request

from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.timer import (
    BreakDurationSelect,
    MaterialSelect,
    ModeSwitch,
    TimerState,
)
from spireworks.services.actions import ensure_accepted
from spireworks.services.study_timer import StudyMaterial, StudyTimer

router = APIRouter(prefix="/timer", tags=["timer"])


async def get_timer(req: Request, user: User = Depends(get_current_user)) -> StudyTimer:
    return req.app.state.timers.get(user)


@router.get("", response_model=TimerState)
async def get_timer_state(timer: StudyTimer = Depends(get_timer)):
    return timer.snapshot()


@router.post("/material", response_model=TimerState)
async def select_material(data: MaterialSelect, timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.select_material(StudyMaterial(**data.model_dump())))
    return timer.snapshot()


@router.delete("/material", response_model=TimerState)
async def clear_material(timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.clear_material())
    return timer.snapshot()


@router.post("/mode", response_model=TimerState)
async def switch_mode(data: ModeSwitch, timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.switch_mode(data.mode, confirmed=data.confirmed))
    return timer.snapshot()


@router.post("/start", response_model=TimerState)
async def start_timer(timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.start())
    return timer.snapshot()


@router.post("/pause", response_model=TimerState)
async def pause_timer(timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.pause())
    return timer.snapshot()


@router.post("/reset", response_model=TimerState)
async def reset_timer(timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.reset())
    return timer.snapshot()


@router.post("/skip", response_model=TimerState)
async def skip_session(timer: StudyTimer = Depends(get_timer)):
    ensure_accepted(timer.skip())
    return timer.snapshot()


@router.post("/break-duration", response_model=TimerState)
async def select_break_duration(
    data: BreakDurationSelect, timer: StudyTimer = Depends(get_timer)
):
    ensure_accepted(timer.select_break_duration(data.minutes))
    return timer.snapshot()
