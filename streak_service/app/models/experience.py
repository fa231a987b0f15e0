"""익스피리언스(테넌트)와 익스피리언스별 설정 도메인 모델.

설정(ExperienceConfig)이 없는 익스피리언스는 스케줄 작업 대상에서 제외된다.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


DEFAULT_EXPERIENCE_NAME = "QuestChat Experience"
DEFAULT_STREAK_THRESHOLDS = (3, 7)


class Experience(BaseModel):
    """Whop 설치 단위(테넌트) 도메인 모델."""

    id: str | None = None
    experience_id: str  # Whop experience id (외부 식별자, 유니크)
    name: str = DEFAULT_EXPERIENCE_NAME
    access_pass_id: str | None = None  # 보상 코드를 연결할 상품/패스
    chat_channel_id: str | None = None  # 채팅 채널 탐색 결과 캐시
    created_at: datetime
    updated_at: datetime


class ExperienceConfig(BaseModel):
    """익스피리언스별 스케줄/보상 설정."""

    experience_id: str
    prompt_time_utc: str = "09:00"
    grace_minutes: int = 90
    reward_percentage: int = 20
    reward_stock: int = 1
    reward_expiry_days: int = 7
    streak_thresholds: list[int] = Field(
        default_factory=lambda: list(DEFAULT_STREAK_THRESHOLDS)
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConfiguredExperience(BaseModel):
    """설정이 존재하는 익스피리언스. 배치 작업의 처리 단위다."""

    experience: Experience
    config: ExperienceConfig

    @property
    def experience_id(self) -> str:
        return self.experience.experience_id


class ExperienceConfigUpdate(BaseModel):
    """관리 API 의 설정 저장 입력. 비어 있는 필드는 기존 값(없으면 기본값)을 유지한다."""

    name: str | None = None
    access_pass_id: str | None = None
    prompt_time_utc: str | None = None
    grace_minutes: int | None = None
    reward_percentage: int | None = None
    reward_stock: int | None = None
    reward_expiry_days: int | None = None
    streak_thresholds: list[int] | None = None
