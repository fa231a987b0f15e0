"""스트릭 레포지토리 구현체.

증가/리셋은 모두 단일 업데이트 명령으로 수행해 읽기-수정-쓰기 사이의 경합을 없앤다.
"""

from __future__ import annotations

from datetime import datetime

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from common.types.datetime import utc_now

from .documents.streak_document import StreakDocument
from .interfaces import StreakRepositoryInterface
from ..models.streak import Streak


class StreakRepository(StreakRepositoryInterface):
    """streaks 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["streaks"]

    def record_activity(
        self, experience_id: str, user_id: str, active_at: datetime
    ) -> Streak:
        now = utc_now()
        # 업데이트 파이프라인: 1단계에서 current 를 올리고, 2단계에서 올라간 current 로 best 를 계산한다.
        pipeline = [
            {
                "$set": {
                    "current": {"$add": [{"$ifNull": ["$current", 0]}, 1]},
                    "week_count": {"$add": [{"$ifNull": ["$week_count", 0]}, 1]},
                    "last_active_at": active_at,
                    "created_at": {"$ifNull": ["$created_at", now]},
                    "updated_at": now,
                }
            },
            {"$set": {"best": {"$max": [{"$ifNull": ["$best", 0]}, "$current"]}}},
        ]

        raw = self._col.find_one_and_update(
            {"experience_id": experience_id, "user_id": user_id},
            pipeline,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return StreakDocument.model_validate(raw).to_domain()

    def reset_inactive(self, experience_id: str, active_user_ids: list[str]) -> int:
        result = self._col.update_many(
            {
                "experience_id": experience_id,
                "current": {"$gt": 0},
                "user_id": {"$nin": active_user_ids},
            },
            {"$set": {"current": 0, "updated_at": utc_now()}},
        )
        return result.modified_count

    def list_top_by_week_count(self, experience_id: str, limit: int) -> list[Streak]:
        cursor = self._col.find(
            {"experience_id": experience_id, "week_count": {"$gt": 0}},
            sort=[("week_count", DESCENDING), ("current", DESCENDING)],
            limit=limit,
        )
        return [StreakDocument.model_validate(raw).to_domain() for raw in cursor]

    def reset_week_counts(self, experience_id: str) -> int:
        result = self._col.update_many(
            {"experience_id": experience_id},
            {"$set": {"week_count": 0, "updated_at": utc_now()}},
        )
        return result.modified_count

    def list_top_by_current(self, experience_id: str, limit: int) -> list[Streak]:
        cursor = self._col.find(
            {"experience_id": experience_id},
            sort=[("current", DESCENDING), ("best", DESCENDING)],
            limit=limit,
        )
        return [StreakDocument.model_validate(raw).to_domain() for raw in cursor]
