from fastapi import APIRouter, Depends, HTTPException, Request, status

from spireworks.config import settings
from spireworks.dependencies import get_current_user
from spireworks.models.user import User
from spireworks.schemas.recommendation import (
    RecommendationRequest,
    RecommendationResponse,
)
from spireworks.services.recommendation_service import (
    create_provider,
    recommend_study_duration,
)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/recommend-study-duration", response_model=RecommendationResponse)
async def recommend_duration(
    data: RecommendationRequest,
    req: Request,
    user: User = Depends(get_current_user),
):
    """Recommend the next study session length from today's study data."""
    if data.study_data is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Study data is required"
        )

    provider = create_provider(settings)
    redis_client = getattr(req.app.state, "redis", None)

    result = await recommend_study_duration(
        data.study_data, provider, redis_client, str(user.id)
    )
    return RecommendationResponse(
        recommendedMinutes=result.minutes,
        method=result.method,
        insights=result.insight_text,
    )
