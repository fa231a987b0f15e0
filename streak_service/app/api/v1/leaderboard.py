from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..schemas.leaderboard import LeaderboardItem, LeaderboardResponse
from ...services.leaderboard_service import LeaderboardService, get_leaderboard_service


router = APIRouter()


@router.get(
    "/{experience_id}/leaderboard",
    response_model=LeaderboardResponse,
    summary="현재 스트릭 리더보드 조회",
)
async def get_leaderboard(
    experience_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> LeaderboardResponse:
    entries = service.get_leaderboard(experience_id, limit)
    if entries is None:
        raise HTTPException(status_code=404, detail="experience not found")
    return LeaderboardResponse(
        experience_id=experience_id,
        items=[LeaderboardItem.from_domain(e) for e in entries],
    )
