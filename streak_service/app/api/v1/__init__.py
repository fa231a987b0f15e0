from fastapi import APIRouter

from .experiences import router as experiences_router
from .leaderboard import router as leaderboard_router

api_router = APIRouter()
api_router.include_router(
    experiences_router, prefix="/experiences", tags=["experiences"]
)
api_router.include_router(
    leaderboard_router, prefix="/experiences", tags=["leaderboard"]
)
