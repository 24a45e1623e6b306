from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spireworks.database import get_db
from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.session import (
    SessionCreate,
    SessionResponse,
    SessionStats,
    TimerModeName,
)
from spireworks.services import achievement_service, session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    mode: TimerModeName | None = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await session_service.get_sessions(
        db, user.id, limit=limit, offset=offset, mode=mode
    )


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    data: SessionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if data.duration_seconds is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Duration is required"
        )
    session = await session_service.create_session(db, user.id, data.model_dump())
    if session.completed and session.mode == "study":
        await achievement_service.check_achievements(db, user.id)
    return session


@router.get("/stats", response_model=SessionStats)
async def session_stats(
    period: str = Query(default="week", pattern="^(week|month|year)$"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await session_service.get_session_stats(db, user.id, period=period)
