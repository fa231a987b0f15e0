from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import UtcDateTime

from ...models.experience import ExperienceConfig, ExperienceConfigUpdate


class ExperienceConfigRequest(BaseModel):
    name: str | None = None
    access_pass_id: str | None = None
    prompt_time_utc: str | None = None
    grace_minutes: int | None = None
    reward_percentage: int | None = None
    reward_stock: int | None = None
    reward_expiry_days: int | None = None
    streak_thresholds: list[int] | None = None

    def to_domain(self) -> ExperienceConfigUpdate:
        return ExperienceConfigUpdate(**self.model_dump())


class ExperienceConfigResponse(BaseModel):
    experience_id: str
    prompt_time_utc: str
    grace_minutes: int
    reward_percentage: int
    reward_stock: int
    reward_expiry_days: int
    streak_thresholds: list[int]
    created_at: UtcDateTime | None = None
    updated_at: UtcDateTime | None = None

    @classmethod
    def from_domain(cls, config: ExperienceConfig) -> "ExperienceConfigResponse":
        return cls(
            experience_id=config.experience_id,
            prompt_time_utc=config.prompt_time_utc,
            grace_minutes=config.grace_minutes,
            reward_percentage=config.reward_percentage,
            reward_stock=config.reward_stock,
            reward_expiry_days=config.reward_expiry_days,
            streak_thresholds=list(config.streak_thresholds),
            created_at=config.created_at,
            updated_at=config.updated_at,
        )
