from __future__ import annotations

from fastapi import Depends

from .channel_resolver import get_experience_repository
from .rollover_service import get_streak_repository, get_user_repository
from ..models.streak import LeaderboardEntry
from ..repositories.interfaces import (
    ExperienceRepositoryInterface,
    StreakRepositoryInterface,
    UserRepositoryInterface,
)


class LeaderboardService:
    """현재 스트릭 순위 조회. current 내림차순, 동률이면 best 내림차순."""

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        streak_repo: StreakRepositoryInterface,
        user_repo: UserRepositoryInterface,
    ) -> None:
        self._experience_repo = experience_repo
        self._streak_repo = streak_repo
        self._user_repo = user_repo

    def get_leaderboard(
        self, experience_id: str, limit: int
    ) -> list[LeaderboardEntry] | None:
        """익스피리언스가 없으면 None 을 반환한다."""

        if self._experience_repo.find_by_experience_id(experience_id) is None:
            return None

        streaks = self._streak_repo.list_top_by_current(experience_id, limit)
        users = self._user_repo.list_by_ids([s.user_id for s in streaks])

        entries: list[LeaderboardEntry] = []
        for rank, streak in enumerate(streaks, 1):
            user = users.get(streak.user_id)
            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    user_id=streak.user_id,
                    username=user.username if user else None,
                    current=streak.current,
                    best=streak.best,
                    week_count=streak.week_count,
                )
            )
        return entries


def get_leaderboard_service(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    streak_repo: StreakRepositoryInterface = Depends(get_streak_repository),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
) -> LeaderboardService:
    """FastAPI DI용 LeaderboardService 팩토리."""

    return LeaderboardService(
        experience_repo=experience_repo, streak_repo=streak_repo, user_repo=user_repo
    )
