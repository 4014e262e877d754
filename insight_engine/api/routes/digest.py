"""
Digest API routes.
"""

from fastapi import APIRouter, Depends, Query

from insight_engine.api.deps import get_current_user_id, get_digest_service
from insight_engine.engine.digest import DigestReport
from insight_engine.services.digest_service import DigestService

router = APIRouter(prefix="/digest", tags=["digest"])


@router.get("", response_model=DigestReport)
async def get_digest(
    cached: bool = Query(False, description="Serve the last cached report if one exists"),
    user_id: str = Depends(get_current_user_id),
    service: DigestService = Depends(get_digest_service),
) -> DigestReport:
    """Weekly trend digest over the user's recent questions."""
    return await service.generate(user_id, use_cache=cached)
