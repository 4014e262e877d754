"""
Profile API routes.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from insight_engine.api.deps import get_current_user_id, get_question_service
from insight_engine.services.question_service import QuestionService
from insight_engine.utils.timeutils import utcnow

router = APIRouter(prefix="/profile", tags=["profile"])


class WeightsResponse(BaseModel):
    user_id: str
    weights: dict[str, float]
    ranked: list[str]
    as_of: datetime


@router.get("/weights", response_model=WeightsResponse)
async def get_weights(
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> WeightsResponse:
    """Current pillar weights for the user, strongest first in `ranked`."""
    weights = await service.current_weights(user_id)
    return WeightsResponse(
        user_id=user_id,
        weights=weights.as_dict(),
        ranked=[pillar.value for pillar, _ in weights.ranked()],
        as_of=utcnow(),
    )
