from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from spireworks.database import get_db
from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.achievement import AchievementCheckResponse, AchievementResponse
from spireworks.services import achievement_service

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.get("", response_model=list[AchievementResponse])
async def list_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await achievement_service.get_achievements(db, user.id)


@router.post("/check", response_model=AchievementCheckResponse)
async def check_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Unlock anything newly reached and return just those achievements."""
    unlocked = await achievement_service.check_achievements(db, user.id)
    return {"unlocked": unlocked}
