from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    from_object_id,
)

from ...models.experience import (
    DEFAULT_EXPERIENCE_NAME,
    DEFAULT_STREAK_THRESHOLDS,
    Experience,
    ExperienceConfig,
)


class ExperienceDocument(BaseDocument):
    """MongoDB experiences 컬렉션 도큐먼트 모델."""

    experience_id: str
    name: str = DEFAULT_EXPERIENCE_NAME
    access_pass_id: str | None = None
    chat_channel_id: str | None = None

    def to_domain(self) -> Experience:
        return Experience(
            id=from_object_id(self.id),
            experience_id=self.experience_id,
            name=self.name,
            access_pass_id=self.access_pass_id,
            chat_channel_id=self.chat_channel_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ExperienceConfigDocument(BaseDocument):
    """MongoDB configs 컬렉션 도큐먼트 모델."""

    experience_id: str
    prompt_time_utc: str = "09:00"
    grace_minutes: int = 90
    reward_percentage: int = 20
    reward_stock: int = 1
    reward_expiry_days: int = 7
    # 임계값 필드가 생기기 전에 저장된 설정은 기본값(3, 7)으로 읽는다.
    streak_thresholds: list[int] = list(DEFAULT_STREAK_THRESHOLDS)

    def to_domain(self) -> ExperienceConfig:
        return ExperienceConfig(
            experience_id=self.experience_id,
            prompt_time_utc=self.prompt_time_utc,
            grace_minutes=self.grace_minutes,
            reward_percentage=self.reward_percentage,
            reward_stock=self.reward_stock,
            reward_expiry_days=self.reward_expiry_days,
            streak_thresholds=list(self.streak_thresholds),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
