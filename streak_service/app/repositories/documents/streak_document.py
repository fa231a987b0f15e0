from __future__ import annotations

from common.mongo.types import BaseDocument, MongoDateTime

from ...models.streak import Streak


class StreakDocument(BaseDocument):
    """MongoDB streaks 컬렉션 도큐먼트 모델."""

    experience_id: str
    user_id: str
    current: int = 0
    best: int = 0
    week_count: int = 0
    last_active_at: MongoDateTime | None = None

    def to_domain(self) -> Streak:
        return Streak(
            experience_id=self.experience_id,
            user_id=self.user_id,
            current=self.current,
            best=self.best,
            week_count=self.week_count,
            last_active_at=self.last_active_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
